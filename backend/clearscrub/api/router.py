from fastapi import APIRouter

from clearscrub.api.routes import application_intake, companies, statement_intake

api_router = APIRouter()
api_router.include_router(statement_intake.router)
api_router.include_router(application_intake.router)
api_router.include_router(companies.router)
