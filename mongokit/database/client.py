from typing import Any, Dict, Iterator, List, Mapping, MutableMapping, Optional, Sequence
from contextlib import contextmanager

import pymongo
from pymongo import MongoClient, ReturnDocument
from pymongo.collection import Collection
from pymongo.errors import ConfigurationError, PyMongoError
from pymongo.results import DeleteResult, InsertManyResult, InsertOneResult, UpdateResult
from pydantic import ValidationError

from mongokit.config import Settings, get_settings
from mongokit.database.update_type import UpdateType
from mongokit.objectid import new_object_id
from mongokit.utils.exceptions import (
    DatabaseConfigError,
    DatabaseConnectionError,
    DatabaseOperationError,
    UpdateError
)
from mongokit.utils.logger import get_logger

logger = get_logger(__name__)


class MongoDBClient:
    """
    Connection holder plus helpers for common MongoDB operations.

    Every helper selects a collection in the configured database, runs the
    driver call under a per-call timeout of ``context_timeout`` seconds and
    returns the driver's result. Driver failures surface as
    DatabaseOperationError.
    """

    def __init__(
        self,
        addr: str,
        db_name: str,
        context_timeout: float = 10,
        max_pool_size: int = 100,
        client: Optional[MongoClient] = None
    ):
        """
        Initialize the helper. No connection is made until connect().

        Args:
            addr: MongoDB connection URI
            db_name: Name of the database the helpers operate on
            context_timeout: Per-call timeout in seconds
            max_pool_size: Maximum size of the driver's connection pool
            client: An already connected driver client to use instead
        """
        self.addr = addr
        self.db_name = db_name
        self.context_timeout = context_timeout
        self.max_pool_size = max_pool_size
        self.client = client

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "MongoDBClient":
        """
        Build a helper from configuration, loading it from the environment if not given.

        Raises:
            DatabaseConfigError: If the environment holds invalid settings
        """
        if settings is None:
            try:
                settings = get_settings()
            except ValidationError as e:
                fields = [".".join(str(part) for part in error["loc"]) for error in e.errors()]
                logger.error(f"Invalid database configuration: {fields}")
                raise DatabaseConfigError(
                    "Invalid database configuration",
                    details={"fields": fields}
                ) from e
        return cls(
            addr=settings.MONGO_URL,
            db_name=settings.MONGO_DB_NAME,
            context_timeout=settings.MONGO_CONTEXT_TIMEOUT,
            max_pool_size=settings.MONGO_MAX_POOL_SIZE
        )

    def connect(self) -> None:
        """
        Create the driver client and verify it with a ping.

        Raises:
            DatabaseConnectionError: If the address is invalid or the ping fails
        """
        try:
            client = MongoClient(self.addr, maxPoolSize=self.max_pool_size)
        except ConfigurationError as e:
            logger.error(f"Invalid MongoDB address: {str(e)}")
            raise DatabaseConnectionError(
                f"Invalid MongoDB address: {str(e)}",
                details={"db_name": self.db_name}
            ) from e

        try:
            with pymongo.timeout(self.context_timeout):
                client.admin.command("ping")
        except PyMongoError as e:
            client.close()
            logger.error(f"MongoDB ping failed: {str(e)}")
            raise DatabaseConnectionError(
                f"MongoDB ping failed: {str(e)}",
                details={"db_name": self.db_name}
            ) from e

        self.client = client
        logger.info("Successfully connected to MongoDB", extra={"db_name": self.db_name})

    def close(self) -> None:
        if self.client is not None:
            self.client.close()
            self.client = None
            logger.debug("Closed MongoDB client connection")

    def __enter__(self) -> "MongoDBClient":
        if self.client is None:
            self.connect()
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()

    def switch_collection(self, collection_name: str) -> Collection:
        """
        Select a collection in the configured database.

        Raises:
            DatabaseConnectionError: If connect() has not been called
        """
        if self.client is None:
            raise DatabaseConnectionError(
                "MongoDB client is not connected",
                details={"db_name": self.db_name}
            )
        return self.client[self.db_name][collection_name]

    @contextmanager
    def _operation(self, operation: str, collection_name: str) -> Iterator[Collection]:
        collection = self.switch_collection(collection_name)
        try:
            with pymongo.timeout(self.context_timeout):
                yield collection
        except PyMongoError as e:
            logger.error(
                f"MongoDB {operation} on {collection_name} failed: {str(e)}",
                extra={"collection": collection_name, "operation": operation}
            )
            raise DatabaseOperationError(
                f"MongoDB {operation} failed: {str(e)}",
                collection=collection_name,
                operation=operation
            ) from e

    def ping(self) -> bool:
        """
        Test the connection.

        Raises:
            DatabaseConnectionError: If the ping fails
        """
        if self.client is None:
            raise DatabaseConnectionError("MongoDB client is not connected")
        try:
            with pymongo.timeout(self.context_timeout):
                self.client.admin.command("ping")
            return True
        except PyMongoError as e:
            logger.error(f"MongoDB ping failed: {str(e)}")
            raise DatabaseConnectionError(f"MongoDB ping failed: {str(e)}") from e

    def find_one(self, collection_name: str, filter: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        with self._operation("find_one", collection_name) as collection:
            return collection.find_one(filter)

    def find_many(
        self,
        collection_name: str,
        filter: Mapping[str, Any],
        limit: int = 0,
        skip: int = 0
    ) -> List[Dict[str, Any]]:
        """Find documents matching filter, honouring limit and skip (0 means unbounded)."""
        with self._operation("find_many", collection_name) as collection:
            return list(collection.find(filter, limit=limit, skip=skip))

    def find_many_project(
        self,
        collection_name: str,
        filter: Mapping[str, Any],
        result_keys: Sequence[str],
        limit: int = 0,
        skip: int = 0
    ) -> List[Dict[str, Any]]:
        """Find documents, returning only the fields named in result_keys."""
        with self._operation("find_many_project", collection_name) as collection:
            return list(collection.find(
                filter,
                projection=_projection(result_keys),
                limit=limit,
                skip=skip
            ))

    def find_many_project_sort(
        self,
        collection_name: str,
        filter: Mapping[str, Any],
        result_keys: Sequence[str],
        sort_key: str,
        order: bool,
        limit: int = 0,
        skip: int = 0
    ) -> List[Dict[str, Any]]:
        """
        Find documents with a projection, sorted on sort_key.

        Args:
            order: True sorts ascending, False descending
        """
        with self._operation("find_many_project_sort", collection_name) as collection:
            return list(collection.find(
                filter,
                projection=_projection(result_keys),
                sort=[(sort_key, _direction(order))],
                limit=limit,
                skip=skip
            ))

    def find_many_and_sort(
        self,
        collection_name: str,
        filter: Mapping[str, Any],
        sort_key: str,
        order: bool,
        limit: int = 0,
        skip: int = 0
    ) -> List[Dict[str, Any]]:
        """
        Find documents sorted on sort_key.

        Args:
            order: True sorts ascending, False descending
        """
        with self._operation("find_many_and_sort", collection_name) as collection:
            return list(collection.find(
                filter,
                sort=[(sort_key, _direction(order))],
                limit=limit,
                skip=skip
            ))

    def count(self, collection_name: str, filter: Mapping[str, Any]) -> int:
        with self._operation("count", collection_name) as collection:
            return collection.count_documents(filter)

    def all_documents_count(self, collection_name: str) -> int:
        """Estimated number of documents in the whole collection, from metadata."""
        with self._operation("all_documents_count", collection_name) as collection:
            return collection.estimated_document_count()

    def random_one(self, collection_name: str) -> Optional[Dict[str, Any]]:
        """Return one randomly sampled document, or None if the collection is empty."""
        with self._operation("random_one", collection_name) as collection:
            for document in collection.aggregate([{"$sample": {"size": 1}}]):
                return document
            return None

    def find_slice(
        self,
        collection_name: str,
        slice_name: str,
        key: str,
        value: str = ""
    ) -> Optional[Dict[str, Any]]:
        """
        Find a document by a field of an embedded array.

        With an empty value the filter is {slice_name: key}; otherwise it
        matches "<slice_name>.<key>" against value.
        """
        filter = {slice_name: key}
        if value != "":
            filter = {f"{slice_name}.{key}": value}

        with self._operation("find_slice", collection_name) as collection:
            return collection.find_one(filter)

    def insert_one(
        self,
        collection_name: str,
        document: MutableMapping[str, Any]
    ) -> InsertOneResult:
        """Insert a document; one without an _id gets a freshly generated ObjectId."""
        _ensure_id(document)
        with self._operation("insert_one", collection_name) as collection:
            return collection.insert_one(document)

    def insert_many(
        self,
        collection_name: str,
        documents: Sequence[MutableMapping[str, Any]]
    ) -> InsertManyResult:
        for document in documents:
            _ensure_id(document)
        with self._operation("insert_many", collection_name) as collection:
            return collection.insert_many(documents)

    def update_one(
        self,
        collection_name: str,
        filter: Mapping[str, Any],
        updater: Mapping[str, Any],
        up_type: UpdateType = UpdateType.SET
    ) -> UpdateResult:
        """Apply the up_type operator with updater to the first matching document."""
        with self._operation("update_one", collection_name) as collection:
            return collection.update_one(filter, {UpdateType(up_type).value: updater})

    def find_and_update_set_one(
        self,
        collection_name: str,
        filter: Mapping[str, Any],
        updater: Mapping[str, Any],
        up_type: UpdateType = UpdateType.SET
    ) -> Dict[str, Any]:
        """
        Atomically update the first matching document and return it after the update.

        Raises:
            UpdateError: If no document matches filter
        """
        return self._find_and_update(
            "find_and_update_set_one",
            collection_name,
            filter,
            {UpdateType(up_type).value: updater}
        )

    def find_and_update_set_inc(
        self,
        collection_name: str,
        filter: Mapping[str, Any],
        updater: Mapping[str, Any],
        increase: Mapping[str, Any]
    ) -> Dict[str, Any]:
        """
        Atomically $set updater and $inc increase on the first matching
        document, returning it after the update.

        Raises:
            UpdateError: If no document matches filter
        """
        return self._find_and_update(
            "find_and_update_set_inc",
            collection_name,
            filter,
            {UpdateType.SET.value: updater, UpdateType.INC.value: increase}
        )

    def _find_and_update(
        self,
        operation: str,
        collection_name: str,
        filter: Mapping[str, Any],
        update: Mapping[str, Any]
    ) -> Dict[str, Any]:
        with self._operation(operation, collection_name) as collection:
            if collection.find_one(filter) is None:
                raise UpdateError(details={"collection": collection_name})

            document = collection.find_one_and_update(
                filter,
                update,
                return_document=ReturnDocument.AFTER
            )

        if document is None:
            raise UpdateError(details={"collection": collection_name})
        return document

    def delete_one(self, collection_name: str, filter: Mapping[str, Any]) -> DeleteResult:
        with self._operation("delete_one", collection_name) as collection:
            return collection.delete_one(filter)

    def delete_many(self, collection_name: str, filter: Mapping[str, Any]) -> DeleteResult:
        with self._operation("delete_many", collection_name) as collection:
            return collection.delete_many(filter)

    def aggregate(
        self,
        collection_name: str,
        pipeline: Sequence[Mapping[str, Any]]
    ) -> List[Dict[str, Any]]:
        with self._operation("aggregate", collection_name) as collection:
            return list(collection.aggregate(list(pipeline)))


def _projection(result_keys: Sequence[str]) -> Dict[str, int]:
    return {key: 1 for key in result_keys}


def _direction(order: bool) -> int:
    return pymongo.ASCENDING if order else pymongo.DESCENDING


def _ensure_id(document: MutableMapping[str, Any]) -> None:
    if "_id" not in document:
        document["_id"] = new_object_id()
