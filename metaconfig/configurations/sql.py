"""Relational configuration store built on SQLAlchemy.

Tables:
- ``configurations``: one row per configuration, field specs serialized as JSON text
- ``configuration_rules``: rule tree nodes with parent pointers; rows cascade
  on deletion of their configuration or their parent rule
"""
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator

import orjson
import structlog
from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    create_engine,
    delete,
    event,
    func,
    select,
    text,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from ..rules.models import Rule, RuleInput
from .models import Configuration, FieldSpec, PriorityUpdate, StorefrontPosition, field_specs_adapter
from .persistence import ConfigurationStore, _insertion_order

log = structlog.get_logger()


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class ConfigurationRow(Base):
    __tablename__ = "configurations"
    __table_args__ = (
        CheckConstraint(
            "type IN ('vendor', 'category', 'collection', 'product', 'combined')",
            name="ck_configurations_type",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    name: Mapped[str | None] = mapped_column(Text, nullable=True)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    metadata_fields: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0, index=True)
    show_on_storefront: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    storefront_position: Mapped[str] = mapped_column(
        String(40), nullable=False, default=StorefrontPosition.AFTER_PRICE.value
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now, onupdate=_now)


class RuleRow(Base):
    __tablename__ = "configuration_rules"
    __table_args__ = (
        CheckConstraint(
            "kind IN ('vendor', 'collection', 'category', 'product')",
            name="ck_configuration_rules_kind",
        ),
        CheckConstraint("operator IN ('AND', 'OR')", name="ck_configuration_rules_operator"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    configuration_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("configurations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    parent_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("configuration_rules.id", ondelete="CASCADE"), nullable=True, index=True
    )
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    match_value: Mapped[str] = mapped_column(Text, nullable=False, default="")
    match_ref: Mapped[str | None] = mapped_column(Text, nullable=True)
    operator: Mapped[str] = mapped_column(String(3), nullable=False, default="OR")
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now)


def _dump_fields(metadata_fields: list[FieldSpec]) -> str:
    return orjson.dumps(field_specs_adapter.dump_python(metadata_fields, mode="json")).decode()


def _to_configuration(row: ConfigurationRow) -> Configuration:
    return Configuration(
        id=row.id,
        tenant=row.tenant,
        name=row.name,
        type=row.type,
        metadata_fields=field_specs_adapter.validate_python(orjson.loads(row.metadata_fields)),
        priority=row.priority,
        show_on_storefront=row.show_on_storefront,
        storefront_position=row.storefront_position,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _to_rule(row: RuleRow) -> Rule:
    return Rule(
        id=row.id,
        configuration_id=row.configuration_id,
        parent_id=row.parent_id,
        kind=row.kind,
        match_value=row.match_value,
        match_ref=row.match_ref,
        operator=row.operator,
        level=row.level,
        position=row.position,
        created_at=row.created_at,
    )


class SqlConfigurationStore(ConfigurationStore):
    """Configuration store on any SQLAlchemy-supported database."""

    def __init__(self, database_url: str, create_tables: bool = True):
        engine_kwargs = {}
        if database_url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if database_url in ("sqlite://", "sqlite:///:memory:"):
                engine_kwargs["poolclass"] = StaticPool

        self.engine = create_engine(database_url, **engine_kwargs)
        if self.engine.dialect.name == "sqlite":
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)

        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)
        if create_tables:
            Base.metadata.create_all(self.engine)
        log.info("configurations.persistence.initialized", backend="sql", dialect=self.engine.dialect.name)

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Context manager for database sessions."""
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception as e:
            session.rollback()
            log.error("database.session_error", error=str(e))
            raise
        finally:
            session.close()

    async def create(
        self,
        tenant: str,
        name: str | None,
        type: str,
        metadata_fields: list[FieldSpec],
        priority: int = 0,
        show_on_storefront: bool = False,
        storefront_position: str = StorefrontPosition.AFTER_PRICE.value,
    ) -> Configuration:
        with self.session() as session:
            row = ConfigurationRow(
                tenant=tenant,
                name=name,
                type=type,
                metadata_fields=_dump_fields(metadata_fields),
                priority=priority,
                show_on_storefront=show_on_storefront,
                storefront_position=storefront_position,
            )
            session.add(row)
            session.flush()
            configuration = _to_configuration(row)
        log.info("configuration.saved", configuration_id=configuration.id, tenant=tenant)
        return configuration

    async def get(self, configuration_id: int) -> Configuration | None:
        with self.session() as session:
            row = session.get(ConfigurationRow, configuration_id)
            return _to_configuration(row) if row else None

    async def update(
        self,
        configuration_id: int,
        name: str | None,
        type: str,
        metadata_fields: list[FieldSpec],
        show_on_storefront: bool,
        storefront_position: str,
    ) -> Configuration | None:
        with self.session() as session:
            row = session.get(ConfigurationRow, configuration_id)
            if row is None:
                return None
            row.name = name
            row.type = type
            row.metadata_fields = _dump_fields(metadata_fields)
            row.show_on_storefront = show_on_storefront
            row.storefront_position = storefront_position
            row.updated_at = _now()
            session.flush()
            configuration = _to_configuration(row)
        log.info("configuration.saved", configuration_id=configuration_id)
        return configuration

    async def delete(self, configuration_id: int) -> bool:
        with self.session() as session:
            row = session.get(ConfigurationRow, configuration_id)
            if row is None:
                return False
            session.execute(delete(RuleRow).where(RuleRow.configuration_id == configuration_id))
            session.delete(row)
        log.info("configuration.deleted", configuration_id=configuration_id)
        return True

    async def list_by_tenant(self, tenant: str) -> list[Configuration]:
        with self.session() as session:
            rows = session.scalars(
                select(ConfigurationRow)
                .where(ConfigurationRow.tenant == tenant)
                .order_by(ConfigurationRow.priority.desc(), ConfigurationRow.id)
            ).all()
            return [_to_configuration(row) for row in rows]

    async def list_rules(self, configuration_id: int) -> list[Rule]:
        with self.session() as session:
            rows = session.scalars(
                select(RuleRow)
                .where(RuleRow.configuration_id == configuration_id)
                .order_by(RuleRow.level, RuleRow.position, RuleRow.id)
            ).all()
            return [_to_rule(row) for row in rows]

    async def count_rules(self, configuration_id: int) -> int:
        with self.session() as session:
            return session.scalar(
                select(func.count(RuleRow.id)).where(RuleRow.configuration_id == configuration_id)
            )

    async def replace_rules(self, configuration_id: int, rules: list[RuleInput]) -> list[Rule]:
        with self.session() as session:
            session.execute(delete(RuleRow).where(RuleRow.configuration_id == configuration_id))
            id_map: dict[str, int] = {}
            for rule_input in _insertion_order(rules):
                row = RuleRow(
                    configuration_id=configuration_id,
                    parent_id=id_map.get(rule_input.parent_ref) if rule_input.parent_ref else None,
                    kind=rule_input.kind,
                    match_value=rule_input.match_value,
                    match_ref=rule_input.match_ref,
                    operator=rule_input.operator,
                    level=rule_input.level,
                    position=rule_input.position,
                )
                session.add(row)
                session.flush()
                id_map[rule_input.ref] = row.id
        log.info("rules.replaced", configuration_id=configuration_id, count=len(rules))
        return await self.list_rules(configuration_id)

    async def update_priorities(self, tenant: str, updates: list[PriorityUpdate]) -> int:
        count = 0
        with self.session() as session:
            for update in updates:
                row = session.get(ConfigurationRow, update.id)
                if row is None or row.tenant != tenant:
                    continue
                row.priority = update.priority
                row.updated_at = _now()
                count += 1
        log.info("configurations.priorities_updated", tenant=tenant, count=count)
        return count

    async def health_check(self) -> bool:
        try:
            with self.session() as session:
                session.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            log.warning("database.health_check_failed", error=str(e))
            return False


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()
