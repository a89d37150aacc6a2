"""Pytest configuration and shared fixtures."""

import os

# utils.config resolves the database at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import date

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.pool import StaticPool

from utils.plan_engine.models import MONTH_COLUMNS
from utils.schema import init_schema


class Seeder:
    """Inserts reference data and events into a test database"""

    def __init__(self, engine):
        self.engine = engine

    def _insert(self, sql, params):
        with self.engine.begin() as conn:
            return conn.execute(text(sql), params).lastrowid

    def city(self, client_id, code, name, classification, is_active=True):
        return self._insert("""
            INSERT INTO cities (client_id, code, name, classification, population_volume,
                                postal_traffic_volume, is_active)
            VALUES (:client_id, :code, :name, :classification, 0, 0, :is_active)
        """, {'client_id': client_id, 'code': code, 'name': name,
              'classification': classification, 'is_active': 1 if is_active else 0})

    def requirement(self, client_id, city_id, from_a=0, from_b=0, from_c=0):
        return self._insert("""
            INSERT INTO city_allocation_requirements
            (client_id, city_id, from_classification_a, from_classification_b, from_classification_c)
            VALUES (:client_id, :city_id, :a, :b, :c)
        """, {'client_id': client_id, 'city_id': city_id, 'a': from_a, 'b': from_b, 'c': from_c})

    def seasonality(self, client_id, product_id, year, percentages):
        values = {month: str(p) for month, p in zip(MONTH_COLUMNS, percentages)}
        return self._insert(f"""
            INSERT INTO product_seasonality (client_id, product_id, year, {', '.join(MONTH_COLUMNS)})
            VALUES (:client_id, :product_id, :year, {', '.join(':' + m for m in MONTH_COLUMNS)})
        """, {'client_id': client_id, 'product_id': product_id, 'year': year, **values})

    def node(self, client_id, code, city_id, is_active=True):
        return self._insert("""
            INSERT INTO nodes (client_id, code, city_id, country, is_active)
            VALUES (:client_id, :code, :city_id, 'ES', :is_active)
        """, {'client_id': client_id, 'code': code, 'city_id': city_id, 'is_active': 1 if is_active else 0})

    def panelist(self, client_id, name, node_code=None, weekly_event_cap=None, is_active=True):
        return self._insert("""
            INSERT INTO panelists (client_id, name, node_code, weekly_event_cap, is_active)
            VALUES (:client_id, :name, :node_code, :cap, :is_active)
        """, {'client_id': client_id, 'name': name, 'node_code': node_code,
              'cap': weekly_event_cap, 'is_active': 1 if is_active else 0})

    def carrier_product(self, carrier_id, product_id):
        return self._insert("""
            INSERT INTO carrier_products (carrier_id, product_id) VALUES (:carrier_id, :product_id)
        """, {'carrier_id': carrier_id, 'product_id': product_id})

    def plan(self, client_id, product_id, year, status='merged'):
        return self._insert("""
            INSERT INTO generated_allocation_plans
            (client_id, product_id, year, start_date, end_date, status, merge_strategy)
            VALUES (:client_id, :product_id, :year, :start_date, :end_date, :status, 'add')
        """, {'client_id': client_id, 'product_id': product_id, 'year': year,
              'start_date': date(year, 1, 1).isoformat(), 'end_date': date(year, 12, 31).isoformat(),
              'status': status})

    def event(self, plan_id, client_id, product_id, origin, destination, scheduled, status='PENDING'):
        return self._insert("""
            INSERT INTO generated_allocation_plan_details
            (plan_id, client_id, product_id, nodo_origen, nodo_destino, scheduled_date, status)
            VALUES (:plan_id, :client_id, :product_id, :origin, :destination, :scheduled, :status)
        """, {'plan_id': plan_id, 'client_id': client_id, 'product_id': product_id,
              'origin': origin, 'destination': destination,
              'scheduled': scheduled.isoformat(), 'status': status})

    def fetch_event(self, event_id):
        with self.engine.connect() as conn:
            row = conn.execute(text("""
                SELECT nodo_origen, nodo_destino, status FROM generated_allocation_plan_details
                WHERE id = :id
            """), {'id': event_id}).fetchone()
        return dict(row._mapping) if row else None

    def scalar(self, sql, params=None):
        with self.engine.connect() as conn:
            return conn.execute(text(sql), params or {}).scalar()


@pytest.fixture
def engine():
    """Fresh in-memory SQLite database with the schema created"""
    eng = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    init_schema(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def seed(engine):
    return Seeder(engine)


@pytest.fixture
def spain(seed):
    """
    Client 1 with the classic five-city setup: Madrid(A), Barcelona(A),
    Girona(B), La Palma(B), Boadilla(C). Barcelona requires 50 / 20 / 5.
    """
    ids = {
        'MAD': seed.city(1, 'MAD', 'Madrid', 'A'),
        'BCN': seed.city(1, 'BCN', 'Barcelona', 'A'),
        'GIR': seed.city(1, 'GIR', 'Girona', 'B'),
        'LPA': seed.city(1, 'LPA', 'La Palma', 'B'),
        'BOA': seed.city(1, 'BOA', 'Boadilla', 'C'),
    }
    seed.requirement(1, ids['BCN'], from_a=50, from_b=20, from_c=5)
    return ids


@pytest.fixture
def triangle(seed):
    """
    Client 1 with three cities (one per classification), one node and one
    panelist each, every destination requiring one event from each class.
    Product 7 ships everything in January 2025.
    """
    cities = {
        'BOA': seed.city(1, 'BOA', 'Boadilla', 'C'),
        'GIR': seed.city(1, 'GIR', 'Girona', 'B'),
        'MAD': seed.city(1, 'MAD', 'Madrid', 'A'),
    }
    for code, city_id in cities.items():
        seed.requirement(1, city_id, from_a=1, from_b=1, from_c=1)
        seed.node(1, f'N-{code}', city_id)
        seed.panelist(1, f'Panelist {code}', node_code=f'N-{code}')
    seed.seasonality(1, 7, 2025, [100] + [0] * 11)
    return cities
