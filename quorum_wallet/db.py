"""
LevelDB-backed key-value storage for wallet state.
"""
import plyvel
import logging
from typing import Optional
from contextlib import contextmanager

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class DB:
    def __init__(self, db_path: str, create_if_missing: bool = True,
                 write_buffer_size: int = 4 * 1024 * 1024,
                 max_open_files: int = 1000,
                 compression: Optional[str] = 'snappy'):
        """
        Open (or create) the database directory.

        Args:
            db_path: Path to database directory
            create_if_missing: Create database if it doesn't exist
            write_buffer_size: Size of write buffer
            max_open_files: Maximum number of open files
            compression: 'snappy' or None
        """
        self.path = db_path
        try:
            self._db = plyvel.DB(
                db_path,
                create_if_missing=create_if_missing,
                write_buffer_size=write_buffer_size,
                max_open_files=max_open_files,
                compression=compression,
            )
            self._closed = False
            logger.info(f"Database opened at {db_path}")
        except Exception as e:
            logger.error(f"Failed to open database at {db_path}: {e}")
            raise

    def _check_open(self):
        if self._closed:
            raise RuntimeError("Database is closed")

    def get(self, key: bytes) -> Optional[bytes]:
        """
        Get value by key.

        Returns None if key doesn't exist.
        """
        self._check_open()
        try:
            return self._db.get(key)
        except Exception as e:
            logger.error(f"Error getting key {key.hex()[:16]}: {e}")
            raise

    def put(self, key: bytes, value: bytes):
        self._check_open()
        try:
            self._db.put(key, value)
        except Exception as e:
            logger.error(f"Error putting key {key.hex()[:16]}: {e}")
            raise

    def delete(self, key: bytes):
        self._check_open()
        try:
            self._db.delete(key)
        except Exception as e:
            logger.error(f"Error deleting key {key.hex()[:16]}: {e}")
            raise

    def exists(self, key: bytes) -> bool:
        return self.get(key) is not None

    @contextmanager
    def write_batch(self):
        """
        Context manager for atomic batch writes.

        Example:
            with db.write_batch() as batch:
                batch.put(b'key1', b'value1')
                batch.delete(b'key2')
        """
        self._check_open()
        batch = self._db.write_batch(transaction=True)
        try:
            yield batch
            batch.write()
        except Exception as e:
            logger.error(f"Error in batch write: {e}")
            raise

    def apply(self, writes: dict):
        """
        Write a set of changes in one batch.

        Values of None delete the key.
        """
        with self.write_batch() as batch:
            for key, value in writes.items():
                if value is None:
                    batch.delete(key)
                else:
                    batch.put(key, value)

    def get_prefix(self, prefix: bytes) -> list[tuple[bytes, bytes]]:
        """
        Get all key-value pairs with a given prefix, in key order.

        An empty prefix returns the whole database.
        """
        self._check_open()
        try:
            if prefix:
                return list(self._db.iterator(prefix=prefix))
            return list(self._db.iterator())
        except Exception as e:
            logger.error(f"Error getting prefix {prefix.hex()}: {e}")
            raise

    def close(self):
        if not self._closed:
            try:
                self._db.close()
                self._closed = True
                logger.info("Database closed")
            except Exception as e:
                logger.error(f"Error closing database: {e}")
                raise

    def is_closed(self) -> bool:
        return self._closed
