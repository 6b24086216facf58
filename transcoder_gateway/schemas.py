from typing import Optional

from pydantic import BaseModel, Field


class UrlInput(BaseModel):
    url: Optional[str] = Field(None, description="Remote URL of the media to convert.")


class AudioConversionResponse(BaseModel):
    duration: Optional[int] = Field(
        None, description="Output duration in whole seconds. Null when it could not be determined."
    )
    audio: str = Field(..., description="The converted audio, base64 encoded.")
    format: str = Field(..., description="The output format that was produced.")


class VideoConversionResponse(BaseModel):
    video: str = Field(..., description="The converted video, base64 encoded.")
    format: str = Field("mp4", description="The output container.")


class ImageConversionResponse(BaseModel):
    image: str = Field(..., description="The converted image, base64 encoded.")
    format: str = Field("png", description="The output container.")


class ErrorResponse(BaseModel):
    error: str = Field(..., description="Human readable failure detail.")
    stage: Optional[str] = Field(None, description="The conversion stage that failed.")
    details: Optional[str] = Field(None, description="Raw transcoder diagnostics, when exposed.")
