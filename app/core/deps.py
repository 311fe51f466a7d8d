from app.db.session import SessionLocal
from app.services.blobs import LocalBlobStore


# every request that needs DB will get a fresh session, and it will always close.
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


_blob_store = LocalBlobStore()


def get_blob_store() -> LocalBlobStore:
    return _blob_store
