import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, FastAPI, Query
from pymongo.errors import DuplicateKeyError
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request

from auth import create_token, hash_password, verify_password
from database import connect, ensure_indexes, insert_document, new_id, now_iso
from enquiries import EnquiryService
from errors import ApiError, DuplicateError, NotFoundError, register_error_handlers
from locations import LocationResolver
from mailer import build_mailer
from media import build_media_library
from properties import PropertyService
from schemas import (AmenityBulkCreate, AmenityCreate, AmenityUpdate, ContactEnquiryCreate, DeveloperCreate,
                     DeveloperUpdate, IdsRequest, LocationQuery, NamesRequest, ProjectEnquiryCreate,
                     PropertyWrite, SearchRequest, TestimonialCreate, TestimonialUpdate, UserCreate, UserLogin,
                     UserUpdate)
from settings import Settings, load_settings

logger = logging.getLogger(__name__)

api_router = APIRouter(prefix="/api/v1")


def respond(data, message: str, status: int = 200) -> dict:
    return {"status": status, "data": data, "message": message}


def get_db(request: Request):
    return request.app.state.db


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_properties(request: Request) -> PropertyService:
    return request.app.state.properties


def get_enquiries(request: Request) -> EnquiryService:
    return request.app.state.enquiries


# ---------------------------------------------------------------- properties

@api_router.post("/property/add", status_code=201)
async def create_property(write: PropertyWrite, properties: PropertyService = Depends(get_properties)):
    prop = await properties.create(write)
    return respond(prop, "Property created successfully", 201)


@api_router.get("/property/get")
async def list_projects(properties: PropertyService = Depends(get_properties)):
    return respond(await properties.list_all(), "Project names and IDs fetched successfully")


@api_router.get("/property/get/{property_id}")
async def get_property(property_id: str, properties: PropertyService = Depends(get_properties)):
    return respond(await properties.get(property_id), f"Property with ID {property_id} found")


@api_router.get("/property/name/{name}")
async def get_property_by_name(name: str, properties: PropertyService = Depends(get_properties)):
    prop = await properties.get_by_name(name)
    return respond(prop, f'Property with name "{prop["name"]}" found')


@api_router.get("/property/slug/{slug}")
async def get_property_by_slug(slug: str, properties: PropertyService = Depends(get_properties)):
    return respond(await properties.get_by_slug(slug), "Property Fetched Successfully by Slug")


@api_router.post("/property/wishlist/ids")
async def get_properties_by_ids(body: IdsRequest, properties: PropertyService = Depends(get_properties)):
    return respond(await properties.get_many(body.ids), "Properties found")


@api_router.put("/property/update/{property_id}")
async def update_property(property_id: str, write: PropertyWrite,
                          properties: PropertyService = Depends(get_properties)):
    return respond(await properties.update(property_id, write), "Property updated successfully")


@api_router.delete("/property/delete/{property_id}")
async def delete_property(property_id: str, properties: PropertyService = Depends(get_properties)):
    await properties.delete(property_id)
    return respond({}, "Property deleted successfully")


@api_router.get("/property/listing")
async def list_properties_by_city(city: str = Query(..., min_length=1), page: int = Query(1, ge=1),
                                  limit: int = Query(10, ge=1, le=100),
                                  properties: PropertyService = Depends(get_properties)):
    result = await properties.list_by_city(city, page, limit)
    return respond(result, "Properties retrieved successfully")


@api_router.post("/property/location")
async def list_properties_by_location(query: LocationQuery, properties: PropertyService = Depends(get_properties)):
    result = await properties.list_by_location(query.type, query.name, query.page, query.limit)
    return respond(result, "Properties retrieved successfully")


@api_router.get("/property/featured-properties")
async def featured_properties(properties: PropertyService = Depends(get_properties)):
    return respond(await properties.featured_by_city(), "Featured properties retrieved successfully")


@api_router.post("/property/search")
async def search_properties(body: SearchRequest, properties: PropertyService = Depends(get_properties)):
    city, result = await properties.search(body)
    if city is None:
        return respond(result, "No properties found for the requested city.")
    return respond(result, f"Properties retrieved successfully for {city['name']}.")


@api_router.post("/property/search-ids")
async def search_by_ids(body: IdsRequest, properties: PropertyService = Depends(get_properties)):
    return respond(await properties.search_by_ids(body.ids), "Properties retrieved successfully")


@api_router.post("/property/search-names")
async def search_by_names(body: NamesRequest, properties: PropertyService = Depends(get_properties)):
    return respond(await properties.search_by_names(body.names), "Properties retrieved successfully")


@api_router.get("/property/search-options")
async def search_options(properties: PropertyService = Depends(get_properties)):
    return respond(await properties.search_options(), "Search options data fetched successfully")


@api_router.get("/property/projects")
async def project_titles(properties: PropertyService = Depends(get_properties)):
    return respond(await properties.project_titles(), "All projects data fetched successfully")


@api_router.get("/property/location-data")
async def location_data(properties: PropertyService = Depends(get_properties)):
    return respond(await properties.location_options(), "Location data fetched successfully")


@api_router.get("/property/slugs")
async def property_slugs(properties: PropertyService = Depends(get_properties)):
    return respond(await properties.slugs(), "Slugs fetched successfully")


# ---------------------------------------------------------------- amenities

@api_router.post("/amenity/add", status_code=201)
async def add_amenity(data: AmenityCreate, db=Depends(get_db)):
    if await db.amenities.find_one({"title": data.title}):
        raise DuplicateError("Amenity already exists")
    doc = {**data.model_dump(), "amenity_id": new_id(), "created_at": now_iso()}
    try:
        await insert_document(db.amenities, doc)
    except DuplicateKeyError:
        raise DuplicateError("Amenity already exists")
    return respond(doc, "Amenity added successfully", 201)


@api_router.post("/amenity/bulk", status_code=201)
async def bulk_add_amenities(data: AmenityBulkCreate, db=Depends(get_db)):
    titles = [a.title for a in data.amenities]
    repeated = sorted({t for t in titles if titles.count(t) > 1})
    if repeated:
        raise DuplicateError(f"Duplicate amenity titles found: {', '.join(repeated)}")
    existing = await db.amenities.find({"title": {"$in": titles}}, {"_id": 0, "title": 1}).to_list(None)
    if existing:
        raise DuplicateError(f"Amenities already exist: {', '.join(e['title'] for e in existing)}")
    docs = [{**a.model_dump(), "amenity_id": new_id(), "created_at": now_iso()} for a in data.amenities]
    await db.amenities.insert_many(docs)
    for doc in docs:
        doc.pop("_id", None)
    return respond(docs, "Amenities added successfully", 201)


@api_router.get("/amenity")
async def list_amenities(db=Depends(get_db)):
    amenities = await db.amenities.find({}, {"_id": 0}).to_list(None)
    return respond(amenities, "Amenities retrieved successfully")


@api_router.get("/amenity/{amenity_id}")
async def get_amenity(amenity_id: str, db=Depends(get_db)):
    amenity = await db.amenities.find_one({"amenity_id": amenity_id}, {"_id": 0})
    if not amenity:
        raise NotFoundError("Amenity not found")
    return respond(amenity, "Amenity retrieved successfully")


@api_router.put("/amenity/{amenity_id}")
async def update_amenity(amenity_id: str, data: AmenityUpdate, db=Depends(get_db)):
    update = {k: v for k, v in data.model_dump().items() if v is not None}
    if update:
        try:
            result = await db.amenities.update_one({"amenity_id": amenity_id}, {"$set": update})
        except DuplicateKeyError:
            raise DuplicateError("Amenity already exists")
        if result.matched_count == 0:
            raise NotFoundError("Amenity not found")
    amenity = await db.amenities.find_one({"amenity_id": amenity_id}, {"_id": 0})
    if not amenity:
        raise NotFoundError("Amenity not found")
    return respond(amenity, "Amenity updated successfully")


@api_router.delete("/amenity/{amenity_id}")
async def delete_amenity(amenity_id: str, db=Depends(get_db)):
    result = await db.amenities.delete_one({"amenity_id": amenity_id})
    if result.deleted_count == 0:
        raise NotFoundError("Amenity not found")
    return respond(None, "Amenity deleted successfully")


# ---------------------------------------------------------------- developers

@api_router.post("/developer/add", status_code=201)
async def create_developer(data: DeveloperCreate, db=Depends(get_db)):
    if await db.developers.find_one({"name": data.name}):
        raise DuplicateError("Developer with the same name already exists")
    doc = {**data.model_dump(), "developer_id": new_id(), "properties": [], "created_at": now_iso()}
    await insert_document(db.developers, doc)
    return respond(doc, "Developer created successfully", 201)


@api_router.get("/developer")
async def list_developers(db=Depends(get_db)):
    return respond(await db.developers.find({}, {"_id": 0}).to_list(None), "Developers retrieved successfully")


@api_router.get("/developer/{developer_id}")
async def get_developer(developer_id: str, db=Depends(get_db)):
    developer = await db.developers.find_one({"developer_id": developer_id}, {"_id": 0})
    if not developer:
        raise NotFoundError("Developer not found")
    return respond(developer, "Developer retrieved successfully")


@api_router.put("/developer/{developer_id}")
async def update_developer(developer_id: str, data: DeveloperUpdate, db=Depends(get_db)):
    if not await db.developers.find_one({"developer_id": developer_id}):
        raise NotFoundError("Developer not found")
    update = {k: v for k, v in data.model_dump().items() if v is not None}
    if update:
        await db.developers.update_one({"developer_id": developer_id}, {"$set": update})
    developer = await db.developers.find_one({"developer_id": developer_id}, {"_id": 0})
    return respond(developer, "Developer updated successfully")


@api_router.delete("/developer/{developer_id}")
async def delete_developer(developer_id: str, db=Depends(get_db)):
    result = await db.developers.delete_one({"developer_id": developer_id})
    if result.deleted_count == 0:
        raise NotFoundError("Developer not found")
    return respond(None, "Developer deleted successfully")


# ---------------------------------------------------------------- testimonials

@api_router.post("/testimonials/create", status_code=201)
async def create_testimonial(data: TestimonialCreate, db=Depends(get_db)):
    doc = {**data.model_dump(), "testimonial_id": new_id(), "created_at": now_iso()}
    await insert_document(db.testimonials, doc)
    return respond(doc, "Testimonial created successfully", 201)


@api_router.get("/testimonials/get")
async def list_testimonials(db=Depends(get_db)):
    testimonials = await db.testimonials.find({}, {"_id": 0}).sort("created_at", -1).to_list(None)
    return respond(testimonials, "Testimonials fetched successfully")


@api_router.get("/testimonials/get/{testimonial_id}")
async def get_testimonial(testimonial_id: str, db=Depends(get_db)):
    testimonial = await db.testimonials.find_one({"testimonial_id": testimonial_id}, {"_id": 0})
    if not testimonial:
        raise NotFoundError("Testimonial not found")
    return respond(testimonial, "Testimonial fetched successfully")


@api_router.put("/testimonials/update/{testimonial_id}")
async def update_testimonial(testimonial_id: str, data: TestimonialUpdate, db=Depends(get_db)):
    update = data.model_dump(exclude_unset=True)
    if update:
        await db.testimonials.update_one({"testimonial_id": testimonial_id}, {"$set": update})
    testimonial = await db.testimonials.find_one({"testimonial_id": testimonial_id}, {"_id": 0})
    if not testimonial:
        raise NotFoundError("Testimonial not found")
    return respond(testimonial, "Testimonial updated successfully")


@api_router.delete("/testimonials/delete/{testimonial_id}")
async def delete_testimonial(testimonial_id: str, db=Depends(get_db)):
    result = await db.testimonials.delete_one({"testimonial_id": testimonial_id})
    if result.deleted_count == 0:
        raise NotFoundError("Testimonial not found")
    return respond(None, "Testimonial deleted successfully")


# ---------------------------------------------------------------- enquiries

@api_router.post("/enquiry/project", status_code=201)
async def create_project_enquiry(data: ProjectEnquiryCreate, background_tasks: BackgroundTasks,
                                 enquiries: EnquiryService = Depends(get_enquiries)):
    enquiry = await enquiries.create_project_enquiry(data)
    background_tasks.add_task(enquiries.notify, enquiry)
    return respond(enquiry, "Enquiry submitted successfully", 201)


@api_router.post("/enquiry/contact", status_code=201)
async def create_contact_enquiry(data: ContactEnquiryCreate, enquiries: EnquiryService = Depends(get_enquiries)):
    return respond(await enquiries.create_contact_enquiry(data), "Contact enquiry submitted successfully", 201)


# ---------------------------------------------------------------- master data

@api_router.get("/master")
async def master_data(db=Depends(get_db)):
    async def names(collection, id_field):
        docs = await db[collection].find({}, {"_id": 0, id_field: 1, "name": 1}).to_list(None)
        return [{"id": d[id_field], "name": d["name"]} for d in docs]

    amenities = await db.amenities.find({}, {"_id": 0}).to_list(None)
    data = {
        "states": await names("states", "state_id"),
        "cities": await names("cities", "city_id"),
        "localities": await names("localities", "locality_id"),
        "sub_localities": await names("sub_localities", "sub_locality_id"),
        "amenities": [{"id": a["amenity_id"], "title": a["title"], "img_url": a["icon_url"]} for a in amenities],
    }
    return respond(data, "City, state, locality, sub-locality, and amenities retrieved successfully")


# ---------------------------------------------------------------- users

def public_user(user: dict) -> dict:
    return {k: v for k, v in user.items() if k not in ("_id", "password_hash")}


@api_router.post("/admin/users", status_code=201)
async def create_user(data: UserCreate, db=Depends(get_db)):
    if await db.users.find_one({"user_name": data.user_name}):
        raise DuplicateError("Username already registered")
    doc = {**data.model_dump(exclude={"password"}), "user_id": new_id(),
           "password_hash": hash_password(data.password), "active": True, "first_login": True,
           "created_at": now_iso()}
    await insert_document(db.users, doc)
    return respond(public_user(doc), "User created successfully", 201)


@api_router.put("/admin/users/{user_id}")
async def update_user(user_id: str, data: UserUpdate, db=Depends(get_db)):
    if not await db.users.find_one({"user_id": user_id}):
        raise NotFoundError("User not found")
    update = {k: v for k, v in data.model_dump(exclude={"password"}).items() if v is not None}
    if data.password:
        update["password_hash"] = hash_password(data.password)
    update["updated_at"] = now_iso()
    await db.users.update_one({"user_id": user_id}, {"$set": update})
    user = await db.users.find_one({"user_id": user_id}, {"_id": 0})
    return respond(public_user(user), "User updated successfully")


@api_router.post("/admin/login")
async def login(data: UserLogin, db=Depends(get_db), settings: Settings = Depends(get_settings)):
    user = await db.users.find_one({"user_name": data.user_name}, {"_id": 0})
    if not user:
        raise NotFoundError("Username Not Registered")
    if not verify_password(data.password, user.get("password_hash", "")):
        raise ApiError("Incorrect Password Entered", status_code=401)
    token = create_token(user["user_id"], user.get("role", "USER"), settings.jwt_secret)
    return respond({"token": token, "user": {"id": user["user_id"], "user_name": user["user_name"],
                                             "role": user.get("role", "USER")}},
                   "User Logged In Successfully")


# ---------------------------------------------------------------- app

def wire_services(app: FastAPI, db) -> None:
    settings = app.state.settings
    app.state.db = db
    app.state.resolver = LocationResolver(db)
    app.state.properties = PropertyService(
        db, app.state.resolver, app.state.media,
        exclusive_amenity_min=settings.exclusive_amenity_min,
        featured_target=settings.featured_target,
        default_search_city=settings.default_search_city,
        prune_references_on_delete=settings.prune_references_on_delete,
    )
    app.state.enquiries = EnquiryService(db, app.state.mailer, settings)


@asynccontextmanager
async def lifespan(app: FastAPI):
    client = None
    if app.state.db is None:
        client, db = connect(app.state.settings)
        await ensure_indexes(db)
        wire_services(app, db)
        logger.info("Connected to %s", app.state.settings.db_name)
    yield
    if client is not None:
        client.close()


def create_app(settings: Optional[Settings] = None, db=None, mailer=None, media=None) -> FastAPI:
    settings = settings or load_settings()
    logging.basicConfig(level=settings.log_level)

    app = FastAPI(title="Listings API", lifespan=lifespan)
    app.state.settings = settings
    app.state.mailer = mailer or build_mailer(settings)
    app.state.media = media or build_media_library(settings)
    app.state.db = None
    if db is not None:
        wire_services(app, db)

    register_error_handlers(app)
    app.include_router(api_router)
    app.add_middleware(
        CORSMiddleware, allow_credentials=True,
        allow_origins=settings.cors_origins,
        allow_methods=["*"], allow_headers=["*"],
    )
    return app


app = create_app()
