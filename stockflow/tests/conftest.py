from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from stockflow.app.api.deps import get_db
from stockflow.app.db.base import Base
from stockflow.app.db.models import models_v1  # noqa: F401  (registers tables)
from stockflow.app.db.models.models_v1 import Container, Rack, Warehouse
from stockflow.app.main import app
from stockflow.services import ledger
from stockflow.services.catalog import ProductDraft, register_product


@pytest.fixture(scope="function")
def engine():
    """In-memory SQLite, one connection shared by every session (StaticPool)."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture(scope="function")
def db_session(engine) -> Session:
    """
    Fresh schema per test.

    Tests commit their arrange data; after an expected domain error they
    roll back, exactly like the endpoints do.
    """
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def client(db_session: Session):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


# ---------- factories ----------
@pytest.fixture
def make_rack(db_session: Session):
    counter = {"n": 0}

    def _make(name: str | None = None) -> Rack:
        counter["n"] += 1
        warehouse = db_session.query(Warehouse).first()
        if warehouse is None:
            warehouse = Warehouse(name="TEST-WH")
            db_session.add(warehouse)
            db_session.flush()
        container = db_session.query(Container).first()
        if container is None:
            container = Container(warehouse_id=warehouse.id, name="TEST-CONTAINER")
            db_session.add(container)
            db_session.flush()
        rack = Rack(container_id=container.id, name=name or f"R-{counter['n']:02d}")
        db_session.add(rack)
        db_session.commit()
        return rack

    return _make


@pytest.fixture
def make_product(db_session: Session):
    counter = {"n": 0}

    def _make(**fields):
        counter["n"] += 1
        n = counter["n"]
        draft = ProductDraft(
            part_number=fields.pop("part_number", f"PN-{n:03d}"),
            name=fields.pop("name", f"Product {n}"),
            price=fields.pop("price", Decimal("1.50")),
            piece_barcode=fields.pop("piece_barcode", f"PC{n:05d}"),
            pack_barcode=fields.pop("pack_barcode", f"PK{n:05d}"),
            box_barcode=fields.pop("box_barcode", f"BX{n:05d}"),
            pieces_per_pack=fields.pop("pieces_per_pack", 10),
            packs_per_box=fields.pop("packs_per_box", 5),
        )
        product = register_product(db_session, draft, force=fields.pop("force", False))
        db_session.commit()
        return product

    return _make


@pytest.fixture
def put_stock(db_session: Session):
    """Receive pieces straight into the ledger (arrange helper)."""
    counter = {"n": 0}

    def _put(product, rack, pieces: int):
        counter["n"] += 1
        ledger.commit_addition(
            db_session,
            product_id=product.id,
            pieces=pieces,
            rack_id=rack.id,
            key=f"test-put:{counter['n']}",
            reason="TEST",
        )
        db_session.commit()

    return _put
