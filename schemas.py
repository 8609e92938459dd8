from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictBool, field_validator, model_validator

Priority = Literal["HIGH", "MEDIUM", "LOW"]
LocationType = Literal["state", "city", "locality", "sub_locality"]


class AmenityRef(BaseModel):
    amenity_id: str
    title: str
    icon_url: str


class ImageItem(BaseModel):
    title: str
    url: str


class GuideItem(BaseModel):
    name: str
    distance: str


class LocalityGuide(BaseModel):
    key: Optional[str] = None
    title: str
    guide_list: List[GuideItem] = []


class FloorPlan(BaseModel):
    price: str
    super_area: Optional[str] = None
    carpet_area: Optional[str] = None
    configuration: Optional[str] = None
    floor_img: str = ""


class Coordinates(BaseModel):
    lat: float
    lng: float


class PropertyType(BaseModel):
    title: str
    sub_type: List[str] = []


class PropertyData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = Field(min_length=1)
    priority: Priority
    developer_id: str = Field(min_length=1)
    featured: Optional[StrictBool] = None
    exclusive: Optional[StrictBool] = None
    amenities: List[Optional[AmenityRef]] = Field(min_length=1)
    exclusive_amenities: List[Optional[AmenityRef]] = Field(min_length=1)

    slug: Optional[str] = None
    meta_title: Optional[str] = None
    meta_description: Optional[str] = None
    meta_keywords: Optional[str] = None
    starting_price: Optional[str] = None
    price_in_figure: Optional[float] = None
    configuration: Optional[str] = None
    description: List[str] = []
    key_highlights: List[str] = []
    area: Optional[str] = None
    square_price: Optional[str] = None
    status: Optional[str] = None
    display_locality: Optional[bool] = None
    locality_guide: List[LocalityGuide] = []
    floor_plan: List[FloorPlan] = []
    image_gallery: List[ImageItem] = []
    brochure: List[str] = []
    video_url: List[str] = []
    property_logo: List[str] = []
    rera: Optional[str] = None
    possession: Optional[str] = None
    coordinates: Optional[Coordinates] = None
    tag_line: Optional[str] = None
    property_type: Optional[PropertyType] = None

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Property name is required")
        return v

    @model_validator(mode="after")
    def featured_or_exclusive(self):
        if self.featured and self.exclusive:
            raise ValueError("Featured and exclusive cannot both be true")
        return self


class PropertyWrite(BaseModel):
    state_name: Optional[str] = None
    city_name: Optional[str] = None
    locality_name: Optional[str] = None
    sub_locality_name: Optional[str] = None
    property_data: PropertyData


class LocationQuery(BaseModel):
    type: LocationType
    name: str = Field(min_length=1)
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=100)


class SearchRequest(BaseModel):
    city: Optional[str] = None
    property_type: Optional[PropertyType] = None
    sub_type: Optional[Union[str, List[str]]] = None
    price_range: Optional[List[float]] = None
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=100)

    @field_validator("price_range")
    @classmethod
    def two_bounds(cls, v):
        if v is not None and len(v) != 2:
            raise ValueError("Price range needs a minimum and a maximum")
        return v


class IdsRequest(BaseModel):
    ids: List[str] = Field(min_length=1)

    @field_validator("ids", mode="before")
    @classmethod
    def listify(cls, v):
        return v if isinstance(v, list) else [v]


class NamesRequest(BaseModel):
    names: List[str] = Field(min_length=1)


class AmenityCreate(BaseModel):
    title: str = Field(min_length=1)
    icon_url: str = Field(min_length=1)


class AmenityBulkCreate(BaseModel):
    amenities: List[AmenityCreate] = Field(min_length=1)


class AmenityUpdate(BaseModel):
    title: Optional[str] = None
    icon_url: Optional[str] = None


class DeveloperCreate(BaseModel):
    name: str = Field(min_length=1)
    developer_img: str = Field(min_length=1)
    description: str = Field(min_length=1)
    total_properties: int = Field(ge=0)


class DeveloperUpdate(BaseModel):
    name: Optional[str] = None
    developer_img: Optional[str] = None
    description: Optional[str] = None
    total_properties: Optional[int] = Field(default=None, ge=0)


class TestimonialCreate(BaseModel):
    name: str = Field(min_length=1)
    description: str = Field(min_length=1)
    image: Optional[str] = None


class TestimonialUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    image: Optional[str] = None


class ProjectEnquiryCreate(BaseModel):
    project_name: str = Field(min_length=1)
    name: str = Field(min_length=1)
    email: str = Field(min_length=3)
    phone_number: str = Field(min_length=1)
    configuration: Optional[str] = None
    captcha_token: Optional[str] = None


class ContactEnquiryCreate(BaseModel):
    name: str = Field(min_length=1)
    email: str = Field(min_length=3)
    phone_number: str = Field(min_length=1)


class UserCreate(BaseModel):
    user_name: str = Field(min_length=1)
    password: str = Field(min_length=6)
    email: Optional[str] = None
    phone_number: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: Literal["SUPER_ADMIN", "PROFESSIONAL", "USER", "CONTENT_MANAGER"] = "USER"


class UserUpdate(BaseModel):
    password: Optional[str] = Field(default=None, min_length=6)
    email: Optional[str] = None
    phone_number: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    active: Optional[bool] = None


class UserLogin(BaseModel):
    user_name: str
    password: str
