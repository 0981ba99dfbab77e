from pydantic import BaseModel, ConfigDict, Field


class UploadResponse(BaseModel):
    url: str


class DeleteImageRequest(BaseModel):
    image_url: str = Field(..., alias="imageUrl", min_length=1)

    model_config = ConfigDict(populate_by_name=True)


class DeleteImageResponse(BaseModel):
    success: bool = True
    path: str
