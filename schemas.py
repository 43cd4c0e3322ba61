"""
API Schemas for the Social Media Platform

Request bodies and the public shape of each MongoDB collection:
users, posts and comments. Stored documents carry `_id`; their public form
carries a string `id` instead (see database.to_public).
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field


# ----------------- Requests -----------------
class RegisterRequest(BaseModel):
    username: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class LoginRequest(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None


class CommentRequest(BaseModel):
    commentText: Optional[str] = None


# ----------------- Documents -----------------
class User(BaseModel):
    id: str = Field(..., description="User ID")
    username: str = Field(..., description="Unique login name")
    email: str = Field(..., description="Email address")
    role: Literal["user", "admin"] = Field("user", description="Role for admin routes")


class Post(BaseModel):
    id: str = Field(..., description="Post ID")
    text: str = Field("", description="Post text content")
    imageUrl: str = Field("", description="Reference to an uploaded image, /uploads/<name>")
    youtube: str = Field("", description="Video link")
    userId: str = Field(..., description="User ID of author")
    date: datetime = Field(..., description="Server-assigned creation time")


class Comment(BaseModel):
    id: str = Field(..., description="Comment ID")
    text: str = Field(..., description="Comment text")
    userId: str = Field(..., description="User ID of commenter")
    postId: str = Field(..., description="Post ID being commented on")
    date: datetime = Field(..., description="Server-assigned creation time")


# ----------------- Responses -----------------
class Message(BaseModel):
    message: str


class RegisterResponse(Message):
    userId: str


class TokenResponse(BaseModel):
    token: str


class DeleteResponse(Message):
    deleted: bool = Field(..., description="False when there was nothing to delete")


class Health(BaseModel):
    status: str
    database: str
