from pydantic import BaseModel, EmailStr, Field


# --- Auth ---

class RegisterRequest(BaseModel):
    name: str = Field(min_length=2, max_length=50)
    email: EmailStr
    password: str = Field(min_length=6, max_length=128)
    bio: str | None = Field(None, max_length=200)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class ProfileUpdate(BaseModel):
    name: str | None = Field(None, min_length=2, max_length=50)
    bio: str | None = Field(None, max_length=200)


class PasswordChange(BaseModel):
    current_password: str
    new_password: str = Field(min_length=6, max_length=128)


class UserStatusUpdate(BaseModel):
    is_active: bool


# --- Category ---

_HEX_COLOR = r"^#([A-Fa-f0-9]{6}|[A-Fa-f0-9]{3})$"


class CategoryCreate(BaseModel):
    name: str = Field(min_length=2, max_length=50)
    description: str | None = Field(None, max_length=200)
    color: str = Field("#3B82F6", pattern=_HEX_COLOR)


class CategoryUpdate(BaseModel):
    name: str | None = Field(None, min_length=2, max_length=50)
    description: str | None = Field(None, max_length=200)
    color: str | None = Field(None, pattern=_HEX_COLOR)


# --- Comment ---

class CommentCreate(BaseModel):
    content: str = Field(min_length=1, max_length=500)


# --- Post ---

class PostCreate(BaseModel):
    title: str = Field(min_length=3, max_length=100)
    content: str = Field(min_length=10)
    excerpt: str | None = Field(None, max_length=200)
    category_id: int
    tags: list[str] = []
    is_published: bool = False
    featured_image: str | None = Field(None, max_length=500)


class PostUpdate(BaseModel):
    title: str | None = Field(None, min_length=3, max_length=100)
    content: str | None = Field(None, min_length=10)
    excerpt: str | None = Field(None, max_length=200)
    category_id: int | None = None
    tags: list[str] | None = None
    is_published: bool | None = None
    featured_image: str | None = Field(None, max_length=500)


# --- Pagination ---

class PaginatedResponse(BaseModel):
    success: bool = True
    data: list
    count: int
    total: int
    page: int
    page_size: int
    pages: int


# --- Metrics ---

class MetricsResponse(BaseModel):
    success: bool = True
    total_posts: int
    total_comments: int
    total_users: int
    total_categories: int
    avg_comments_per_post: float
    cache_info: dict = {}
