"""Database schema definitions for the Beaver record store."""

# Organisation: environments, teams, users
SCHEMA_ORG = """
CREATE TABLE IF NOT EXISTS environments (
    id INTEGER PRIMARY KEY,
    name TEXT NOT NULL UNIQUE,
    description TEXT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS teams (
    id INTEGER PRIMARY KEY,
    name TEXT NOT NULL UNIQUE,
    description TEXT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY,
    username TEXT NOT NULL UNIQUE,
    email TEXT,
    role TEXT NOT NULL DEFAULT 'USER' CHECK(role IN ('ADMIN', 'ARCHITECT', 'USER')),
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);
"""

# Catalogue: categories, components, instances
SCHEMA_CATALOG = """
CREATE TABLE IF NOT EXISTS categories (
    id INTEGER PRIMARY KEY,
    name TEXT NOT NULL UNIQUE,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS components (
    id INTEGER PRIMARY KEY,
    name TEXT NOT NULL UNIQUE,
    description TEXT,
    status TEXT NOT NULL DEFAULT 'ACTIVE'
        CHECK(status IN ('ACTIVE', 'PLANNED', 'INACTIVE', 'DEPRECATED')),
    category_id INTEGER REFERENCES categories(id) ON DELETE SET NULL,
    team_id INTEGER REFERENCES teams(id) ON DELETE SET NULL,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

-- Deleting an environment that still has instances is rejected by the FK
CREATE TABLE IF NOT EXISTS component_instances (
    id INTEGER PRIMARY KEY,
    component_id INTEGER NOT NULL REFERENCES components(id) ON DELETE CASCADE,
    environment_id INTEGER NOT NULL REFERENCES environments(id),
    hostname TEXT,
    specs TEXT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    UNIQUE(component_id, environment_id)
);

CREATE INDEX IF NOT EXISTS idx_instances_component ON component_instances(component_id);
CREATE INDEX IF NOT EXISTS idx_instances_environment ON component_instances(environment_id);
"""

# Decisions: ADRs and their participants and impacts
SCHEMA_ADR = """
CREATE TABLE IF NOT EXISTS adrs (
    id INTEGER PRIMARY KEY,
    title TEXT NOT NULL UNIQUE,
    description TEXT,
    status TEXT NOT NULL DEFAULT 'DRAFT'
        CHECK(status IN ('DRAFT', 'ACCEPTED', 'SUPERSEDED', 'REJECTED')),
    -- Legacy single owner, converted to an OWNER participant by the data migration
    owner_id INTEGER REFERENCES users(id) ON DELETE SET NULL,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS adr_participants (
    id INTEGER PRIMARY KEY,
    adr_id INTEGER NOT NULL REFERENCES adrs(id) ON DELETE CASCADE,
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    role TEXT NOT NULL CHECK(role IN ('OWNER', 'REVIEWER', 'CONSUMER')),
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    UNIQUE(adr_id, user_id)
);

CREATE INDEX IF NOT EXISTS idx_participants_adr ON adr_participants(adr_id);

CREATE TABLE IF NOT EXISTS adr_component_instances (
    id INTEGER PRIMARY KEY,
    adr_id INTEGER NOT NULL REFERENCES adrs(id) ON DELETE CASCADE,
    instance_id INTEGER NOT NULL REFERENCES component_instances(id) ON DELETE CASCADE,
    impact_level TEXT NOT NULL DEFAULT 'MEDIUM' CHECK(impact_level IN ('LOW', 'MEDIUM', 'HIGH')),
    notes TEXT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    UNIQUE(adr_id, instance_id)
);

CREATE INDEX IF NOT EXISTS idx_adr_instances_adr ON adr_component_instances(adr_id);

CREATE TABLE IF NOT EXISTS adr_components (
    id INTEGER PRIMARY KEY,
    adr_id INTEGER NOT NULL REFERENCES adrs(id) ON DELETE CASCADE,
    component_id INTEGER NOT NULL REFERENCES components(id) ON DELETE CASCADE,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    UNIQUE(adr_id, component_id)
);
"""

SCHEMA_JOBS = """
-- Sync / integrity jobs run in the background
CREATE TABLE IF NOT EXISTS sync_jobs (
    id INTEGER PRIMARY KEY,
    job_id TEXT NOT NULL UNIQUE,
    mode TEXT NOT NULL CHECK(mode IN ('sync', 'validate', 'repair', 'reconcile')),
    status TEXT NOT NULL CHECK(status IN ('pending', 'running', 'complete', 'failed', 'cancelled')),
    progress INTEGER DEFAULT 0,
    entity TEXT,
    result TEXT,
    started_at TIMESTAMP,
    completed_at TIMESTAMP,
    error_message TEXT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_sync_jobs_status ON sync_jobs(status);
CREATE INDEX IF NOT EXISTS idx_sync_jobs_created ON sync_jobs(created_at);
"""

ALL_SCHEMAS = {
    "org": SCHEMA_ORG,
    "catalog": SCHEMA_CATALOG,
    "adr": SCHEMA_ADR,
    "jobs": SCHEMA_JOBS,
}
