from typing import Optional

from pydantic import BaseModel


class SendRequest(BaseModel):
    phone: Optional[str] = None
    text: Optional[str] = ""
    image_url: Optional[str] = None
    audio_url: Optional[str] = None
    video_url: Optional[str] = None


class SendResponse(BaseModel):
    success: int
    message: str
    phone: Optional[str] = None
    text: Optional[str] = None
    image_url: Optional[str] = None
    audio_url: Optional[str] = None
    video_url: Optional[str] = None
