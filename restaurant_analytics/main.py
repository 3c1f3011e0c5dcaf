"""FastAPI application exposing the analytics engine."""

from typing import Dict

from fastapi import FastAPI

from restaurant_analytics.api.routes import router as api_router

app = FastAPI(title="Restaurant Analytics")

app.include_router(api_router)


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("restaurant_analytics.main:app", host="127.0.0.1", port=8000, reload=True)
