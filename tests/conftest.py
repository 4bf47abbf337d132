import os

os.environ["ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"

from datetime import date  # noqa: E402
from decimal import Decimal  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

import database  # noqa: E402
from database import build_engine, build_session_factory, create_tables, get_db  # noqa: E402
from main import app  # noqa: E402
from models import CategoryModel, CategoryRuleModel, TransactionModel, UserModel  # noqa: E402

TEST_DATABASE_URL = "sqlite+aiosqlite://"


def _memory_engine():
    return build_engine(TEST_DATABASE_URL, poolclass=StaticPool, connect_args={"check_same_thread": False})


# ----------------------------------------------------------------------------
# Database
# ----------------------------------------------------------------------------
@pytest.fixture
async def engine():
    engine = _memory_engine()
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


# ----------------------------------------------------------------------------
# Factories
# ----------------------------------------------------------------------------
async def make_user(session, email="ana@example.com", name="Ana"):
    user = UserModel(name=name, email=email, password_hash="not-a-real-hash")
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return user


async def make_category(session, user, name="Food", ctype="expense"):
    category = CategoryModel(user_id=user.id, name=name, type=ctype)
    session.add(category)
    await session.commit()
    await session.refresh(category)
    return category


async def make_rule(session, user, category, pattern, priority=0, is_active=True):
    rule = CategoryRuleModel(
        user_id=user.id, category_id=category.id, pattern=pattern, priority=priority, is_active=is_active
    )
    session.add(rule)
    await session.commit()
    await session.refresh(rule)
    return rule


async def make_transaction(session, user, description, amount, on=date(2024, 11, 10), ttype="expense", **fields):
    txn = TransactionModel(
        user_id=user.id, description=description, amount=Decimal(amount), date=on, type=ttype, **fields
    )
    session.add(txn)
    await session.commit()
    await session.refresh(txn)
    return txn


@pytest.fixture
async def user(session):
    return await make_user(session)


@pytest.fixture
async def other_user(session):
    return await make_user(session, email="bruno@example.com", name="Bruno")


# ----------------------------------------------------------------------------
# HTTP
# ----------------------------------------------------------------------------
@pytest.fixture
def client():
    engine = _memory_engine()
    factory = build_session_factory(engine)

    async def override_get_db():
        async with factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        c.portal.call(create_tables, engine)
        yield c
        c.portal.call(engine.dispose)
        c.portal.call(database.engine.dispose)
    app.dependency_overrides.clear()


def register_and_login(client, email="ana@example.com", password="s3cret-pass"):
    client.post("/auth/register", json={"name": "Ana", "email": email, "password": password})
    response = client.post("/auth/login", data={"username": email, "password": password})
    token = response.json()["access_token"]
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers(client):
    return register_and_login(client)
