from .blob_store import BlobStore, LocalBlobStore
from .database import Database
from .store import IdentityStore

__all__ = [
	"BlobStore",
	"Database",
	"IdentityStore",
	"LocalBlobStore",
]
