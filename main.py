from contextlib import asynccontextmanager

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware

from app.api.activity_logs.routes import router as activity_logs_router
from app.api.users.routes import router as users_router
from app.api.visitors.routes import router as visitors_router
from app.api.visits.routes import router as visits_router
from app.core import models  # noqa: F401
from app.core.config import Environment, settings
from app.core.database import create_db


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.ENVIRONMENT != Environment.TEST:
        create_db()
    yield


app = FastAPI(title='Visitor Management API', lifespan=lifespan)

# Include routers
app.include_router(
    activity_logs_router, prefix='/activity-logs', tags=['Activity Logs']
)
app.include_router(users_router, prefix='/users', tags=['Users'])
app.include_router(visitors_router, prefix='/visitors', tags=['Visitors'])
app.include_router(visits_router, prefix='/visits', tags=['Visits'])

origins = ['*']
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)


@app.get('/', include_in_schema=False)
def ping():
    return Response(status_code=200)
