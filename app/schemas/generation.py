from enum import Enum

from pydantic import BaseModel, Field

TITLE_MAX_LENGTH = 200


class MovieCategory(str, Enum):
    ACTION = "Action"
    COMEDY = "Comedy"
    DRAMA = "Drama"
    HORROR = "Horror"
    SCI_FI = "Sci-Fi"
    DOCUMENTARY = "Documentary"
    ANIME = "Anime"


class GenerateDescriptionRequest(BaseModel):
    # Length and emptiness are checked by the service so they map to 400
    title: str | None = None


class GenerationResult(BaseModel):
    description: str = Field(default="", max_length=3000)
    summary: str = Field(default="", max_length=200)
    category: MovieCategory = MovieCategory.DRAMA
    year: int
    director: str = Field(default="", max_length=100)
    cast: str = Field(default="", max_length=300)
    rating: str = Field(default="", max_length=20)
    tags: str = Field(default="", max_length=200)
