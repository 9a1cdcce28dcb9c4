from app.api.routes import trackings

__all__ = [
    "trackings",
]
