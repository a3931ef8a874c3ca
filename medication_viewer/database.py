"""
Document Store
Read-only access to the medications collection: ordered cursor pagination,
server-side count and point lookups
"""

import json
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Dict, Any, Optional, Tuple
from sqlalchemy import create_engine, Column, String, DateTime, Text, func, inspect, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import StaticPool
from loguru import logger

from .config import settings
from .exceptions import AuthenticationError


Base = declarative_base()


class MedicationDocumentRecord(Base):
    """Database model for a medication document"""
    __tablename__ = settings.MEDICATIONS_COLLECTION

    rxcui = Column(String(64), primary_key=True)
    document = Column(Text, nullable=False)  # JSON string
    created_at = Column(DateTime, nullable=True, default=datetime.now)
    updated_at = Column(DateTime, nullable=True, default=datetime.now)


class QueryCursor:
    """Opaque resume token issued by a document store"""

    __slots__ = ("_position",)

    def __init__(self, position: Any):
        self._position = position

    def __repr__(self) -> str:
        return "QueryCursor(...)"


class DocumentStore(ABC):
    """A read-only document collection ordered by rxcui"""

    @abstractmethod
    def connect(self) -> None:
        """Open an anonymous read-only session, raising AuthenticationError on failure"""

    @abstractmethod
    def count(self) -> int:
        """Server-side count of the whole collection"""

    @abstractmethod
    def query_page(self, limit: int, start_after: Optional[QueryCursor] = None) -> Tuple[List[Dict[str, Any]], Optional[QueryCursor]]:
        """Up to `limit` documents ordered by rxcui, resuming after `start_after`"""

    @abstractmethod
    def get_by_key(self, key: str) -> Optional[Dict[str, Any]]:
        """Document whose rxcui equals `key`, or None"""


class SQLDocumentStore(DocumentStore):
    """Document store backed by a SQL table of JSON documents"""

    def __init__(self, database_url: Optional[str] = None, echo: Optional[bool] = None):
        self.database_url = database_url or settings.DATABASE_URL
        self.echo = settings.DATABASE_ECHO if echo is None else echo
        self.engine = None
        self.SessionLocal = None
        self._initialize_engine()

    def _initialize_engine(self):
        """Initialize database engine"""
        try:
            engine_args: Dict[str, Any] = {"echo": self.echo}
            if "sqlite" in self.database_url:
                engine_args["connect_args"] = {"check_same_thread": False}
                if self.database_url in ("sqlite://", "sqlite:///:memory:"):
                    engine_args["poolclass"] = StaticPool
            self.engine = create_engine(self.database_url, **engine_args)
            self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)
            logger.info(f"Document store engine initialized: {self.database_url}")
        except Exception as e:
            logger.error(f"Failed to initialize document store engine: {e}")
            raise

    def get_session(self) -> Session:
        """Get database session"""
        if not self.SessionLocal:
            raise RuntimeError("Document store not initialized")
        return self.SessionLocal()

    def connect(self) -> None:
        try:
            with self.get_session() as session:
                session.execute(text("SELECT 1"))
            if not inspect(self.engine).has_table(MedicationDocumentRecord.__tablename__):
                raise AuthenticationError(
                    f"Collection '{MedicationDocumentRecord.__tablename__}' is not available"
                )
            logger.info("Document store session established (read-only)")
        except SQLAlchemyError as e:
            logger.error(f"Failed to connect to document store: {e}")
            raise AuthenticationError(f"Failed to connect to document store: {e}") from e

    def is_connected(self) -> bool:
        """Check if database is connected"""
        try:
            with self.get_session() as session:
                session.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError:
            return False

    def count(self) -> int:
        with self.get_session() as session:
            return session.scalar(select(func.count()).select_from(MedicationDocumentRecord)) or 0

    def query_page(self, limit: int, start_after: Optional[QueryCursor] = None) -> Tuple[List[Dict[str, Any]], Optional[QueryCursor]]:
        stmt = select(MedicationDocumentRecord).order_by(MedicationDocumentRecord.rxcui)
        if start_after is not None:
            stmt = stmt.where(MedicationDocumentRecord.rxcui > start_after._position)
        stmt = stmt.limit(limit)

        with self.get_session() as session:
            rows = session.scalars(stmt).all()
            documents = [self._row_to_document(row) for row in rows]

        cursor = QueryCursor(rows[-1].rxcui) if rows else None
        return documents, cursor

    def get_by_key(self, key: str) -> Optional[Dict[str, Any]]:
        stmt = select(MedicationDocumentRecord).where(MedicationDocumentRecord.rxcui == key).limit(1)
        with self.get_session() as session:
            row = session.scalars(stmt).first()
            return self._row_to_document(row) if row else None

    def _row_to_document(self, row: MedicationDocumentRecord) -> Dict[str, Any]:
        """Convert database row to a document dictionary"""
        document = json.loads(row.document)
        document.setdefault("rxcui", row.rxcui)
        if row.created_at and "created_at" not in document:
            document["created_at"] = row.created_at.isoformat()
        if row.updated_at and "updated_at" not in document:
            document["updated_at"] = row.updated_at.isoformat()
        return document
