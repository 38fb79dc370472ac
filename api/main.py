from fastapi import FastAPI

from api.routes import router
from utils.logging_setup import configure_logging

configure_logging()

app = FastAPI(
    title="Database Client Adapter API",
    version="0.1.0",
    description="Client registry, schema introspection and query execution across database backends",
)
app.include_router(router)
