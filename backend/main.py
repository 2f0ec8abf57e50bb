from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
import uvicorn
from fastapi.middleware.cors import CORSMiddleware
from core.config import settings
from core.errors import BasketError
from core.logging_config import setup_logging
from db.database import create_db_and_tables
from routers.stock import router as stock_router
from routers.families import router as families_router
from routers.deliveries import router as deliveries_router
from core.auth import fastapi_users, auth_backend
from contextlib import asynccontextmanager
from schemas.users import UserRead, UserCreate, UserUpdate


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(settings.log_level, sql_echo=settings.database_echo)
    await create_db_and_tables()
    yield


app = FastAPI(
    title="Basket Distribution API",
    description="Stock ledger, basket assembly and monthly family deliveries",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(BasketError)
async def basket_error_handler(request: Request, exc: BasketError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Authentication routes (fastapi-users)
app.include_router(fastapi_users.get_auth_router(auth_backend), prefix="/auth/jwt", tags=["auth"],)
app.include_router(fastapi_users.get_register_router(UserRead, UserCreate), prefix="/auth", tags=["auth"])
app.include_router(fastapi_users.get_reset_password_router(), prefix="/auth", tags=["auth"])
app.include_router(fastapi_users.get_verify_router(UserRead), prefix="/auth", tags=["auth"])
app.include_router(fastapi_users.get_users_router(UserRead, UserUpdate), prefix="/users", tags=["users"])

# Stock ledger and basket assembly
app.include_router(stock_router, prefix="/stock", tags=["stock"])

# Families and deliveries
app.include_router(families_router, prefix="/families", tags=["families"])
app.include_router(deliveries_router, prefix="/deliveries", tags=["deliveries"])

if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
