"""
=====================================================
Voice Scheduling Platform - Async Database Connection Pool
=====================================================
Provides a shared asyncpg connection pool and the schema the
Postgres-backed stores rely on.
"""

import asyncpg
from typing import Optional
from loguru import logger
from config.settings import settings


SCHEMA_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS tenants (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        did TEXT NOT NULL UNIQUE,
        timezone TEXT NOT NULL DEFAULT 'America/New_York',
        slot_duration_minutes INTEGER NOT NULL DEFAULT 30,
        business_hours JSONB,
        ivr_enabled BOOLEAN NOT NULL DEFAULT FALSE,
        departments JSONB,
        owner_phone TEXT,
        business_phone TEXT,
        calendar_source JSONB,
        agent_enabled BOOLEAN NOT NULL DEFAULT TRUE,
        languages TEXT[],
        default_language TEXT,
        deposit_required BOOLEAN NOT NULL DEFAULT FALSE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS appointments (
        id BIGSERIAL PRIMARY KEY,
        tenant_id TEXT NOT NULL,
        customer_name TEXT NOT NULL,
        customer_phone TEXT NOT NULL,
        appointment_date DATE NOT NULL,
        appointment_time TIME NOT NULL,
        duration_minutes INTEGER NOT NULL,
        status TEXT NOT NULL,
        confirmation_code TEXT NOT NULL,
        source TEXT NOT NULL,
        external_id TEXT,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    # One active appointment per tenant/date/time, across every server process
    """
    CREATE UNIQUE INDEX IF NOT EXISTS appointments_active_slot_uidx
        ON appointments (tenant_id, appointment_date, appointment_time)
        WHERE status IN ('pending', 'confirmed')
    """,
    """
    CREATE TABLE IF NOT EXISTS messages (
        recording_id TEXT PRIMARY KEY,
        tenant_id TEXT NOT NULL,
        caller_phone TEXT,
        recording_url TEXT,
        duration_seconds INTEGER,
        language TEXT,
        summary TEXT,
        status TEXT NOT NULL DEFAULT 'new',
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS usage_accounts (
        tenant_id TEXT PRIMARY KEY,
        tokens_balance INTEGER
    )
    """,
]


_pool: Optional[asyncpg.Pool] = None


async def get_db_pool() -> asyncpg.Pool:
    """
    Get or create the shared asyncpg connection pool.

    Returns:
        asyncpg.Pool: The connection pool
    """
    global _pool
    if _pool is None:
        try:
            _pool = await asyncpg.create_pool(
                dsn=settings.database_url,
                min_size=2,
                max_size=10,
                command_timeout=30,
            )
            logger.info("Database connection pool created successfully")
        except Exception as e:
            logger.error(f"Failed to create database pool: {e}")
            raise
    return _pool


async def init_schema():
    """Create tables and indexes if they do not exist."""
    pool = await get_db_pool()
    async with pool.acquire() as conn:
        async with conn.transaction():
            for statement in SCHEMA_STATEMENTS:
                await conn.execute(statement)
    logger.info("Database schema ready")


async def close_db_pool():
    """Close the connection pool (call on app shutdown)."""
    global _pool
    if _pool is not None:
        await _pool.close()
        _pool = None
        logger.info("Database connection pool closed")
