"""
Plan Engine Schema
==================
Table definitions for the reference data (cities, requirements, seasonality,
topology, carrier links) and for the generated allocation plans.

Queries elsewhere are written with ``sqlalchemy.text``; these definitions are
the single place the column set is declared, and ``init_schema`` creates the
tables on a fresh database (local SQLite, test fixtures).
"""
import logging

from sqlalchemy import (
    MetaData, Table, Column, Integer, String, Boolean, Date, DateTime,
    Numeric, Text, ForeignKey, UniqueConstraint, Index, func
)

logger = logging.getLogger(__name__)

metadata = MetaData()


# ==================== REFERENCE DATA ====================

cities = Table(
    'cities', metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('client_id', Integer, nullable=False, index=True),
    Column('code', String(20), nullable=False),
    Column('name', String(120), nullable=False),
    Column('classification', String(1), nullable=False),
    Column('population_volume', Integer, nullable=True),
    Column('postal_traffic_volume', Integer, nullable=True),
    Column('is_active', Boolean, nullable=False, server_default='1'),
    UniqueConstraint('client_id', 'code', name='uq_cities_client_code'),
)

city_allocation_requirements = Table(
    'city_allocation_requirements', metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('client_id', Integer, nullable=False, index=True),
    Column('city_id', Integer, ForeignKey('cities.id'), nullable=False),
    Column('from_classification_a', Integer, nullable=False, server_default='0'),
    Column('from_classification_b', Integer, nullable=False, server_default='0'),
    Column('from_classification_c', Integer, nullable=False, server_default='0'),
    UniqueConstraint('client_id', 'city_id', name='uq_requirements_client_city'),
)

product_seasonality = Table(
    'product_seasonality', metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('client_id', Integer, nullable=False),
    Column('product_id', Integer, nullable=False),
    Column('year', Integer, nullable=False),
    *[Column(month, Numeric(6, 2), nullable=False, server_default='0') for month in (
        'january', 'february', 'march', 'april', 'may', 'june',
        'july', 'august', 'september', 'october', 'november', 'december'
    )],
    UniqueConstraint('client_id', 'product_id', 'year', name='uq_seasonality_client_product_year'),
)

nodes = Table(
    'nodes', metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('client_id', Integer, nullable=False, index=True),
    Column('code', String(30), nullable=False),
    Column('city_id', Integer, ForeignKey('cities.id'), nullable=False),
    Column('country', String(60), nullable=True),
    Column('is_active', Boolean, nullable=False, server_default='1'),
    UniqueConstraint('client_id', 'code', name='uq_nodes_client_code'),
)

# The node <-> panelist assignment lives on the panelist row only
panelists = Table(
    'panelists', metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('client_id', Integer, nullable=False, index=True),
    Column('name', String(120), nullable=False),
    Column('node_code', String(30), nullable=True),
    Column('weekly_event_cap', Integer, nullable=True),
    Column('is_active', Boolean, nullable=False, server_default='1'),
)

# Carriers allowed to ship each product
carrier_products = Table(
    'carrier_products', metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('carrier_id', Integer, nullable=False),
    Column('product_id', Integer, nullable=False),
    UniqueConstraint('carrier_id', 'product_id', name='uq_carrier_products'),
)


# ==================== GENERATED PLANS ====================

generated_allocation_plans = Table(
    'generated_allocation_plans', metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('client_id', Integer, nullable=False, index=True),
    Column('product_id', Integer, nullable=False),
    Column('carrier_id', Integer, nullable=True),
    Column('year', Integer, nullable=False),
    Column('start_date', Date, nullable=False),
    Column('end_date', Date, nullable=False),
    Column('status', String(10), nullable=False, server_default='draft'),
    Column('merge_strategy', String(10), nullable=False, server_default='add'),
    Column('total_events', Integer, nullable=False, server_default='0'),
    Column('calculated_events', Integer, nullable=False, server_default='0'),
    Column('unassigned_events', Integer, nullable=False, server_default='0'),
    Column('unassigned_breakdown', Text, nullable=True),
    Column('generation_params', Text, nullable=True),
    Column('superseded_events', Integer, nullable=False, server_default='0'),
    Column('created_by', Integer, nullable=True),
    Column('created_at', DateTime, nullable=False, server_default=func.now()),
    Column('merged_at', DateTime, nullable=True),
)

generated_allocation_plan_details = Table(
    'generated_allocation_plan_details', metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('plan_id', Integer, ForeignKey('generated_allocation_plans.id'), nullable=False),
    Column('client_id', Integer, nullable=False),
    Column('product_id', Integer, nullable=False),
    Column('carrier_id', Integer, nullable=True),
    Column('nodo_origen', String(30), nullable=True),
    Column('nodo_destino', String(30), nullable=True),
    Column('scheduled_date', Date, nullable=False),
    Column('status', String(12), nullable=False, server_default='PENDING'),
    Column('label_number', String(40), nullable=True),
    Column('created_at', DateTime, nullable=False, server_default=func.now()),
    Index('ix_details_client_date', 'client_id', 'scheduled_date'),
    Index('ix_details_plan', 'plan_id'),
)


def init_schema(engine):
    """Create all plan engine tables that do not exist yet"""
    metadata.create_all(engine)
    logger.info(f"Schema ready: {len(metadata.tables)} tables")
