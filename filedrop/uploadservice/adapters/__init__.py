from .inmemory import (
    InMemoryAccountDirectory,
    InMemoryAuth,
    InMemoryMetadataRegistry,
    InMemoryObjectStore,
)
from .http import HttpAccountDirectory, HttpAuthClient, HttpMetadataRegistry
from .s3 import S3ObjectStore
