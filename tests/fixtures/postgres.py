"""
PostgreSQL fixtures backed by a disposable testcontainers instance.

Tests using these fixtures are skipped when testcontainers is not installed
or no Docker daemon is reachable.
"""
import logging

import pytest
from dbmanager import DatabaseOptions, QueryBuilder, connect

logger = logging.getLogger(__name__)

SCHEMA = """
drop table if exists orders;
drop table if exists users;
create table users (
    id serial primary key,
    name varchar(64) unique not null,
    status varchar(16),
    logins integer not null default 0,
    active integer not null default 1,
    score double precision
);
create table orders (
    id serial primary key,
    user_id integer not null references users (id),
    amount double precision not null
);
insert into users (name, status, logins, active, score) values
    ('Alice', 'active', 3, 1, 9.5),
    ('Bob', 'active', 0, 1, 7.0),
    ('Charlie', 'inactive', 5, 0, null);
insert into orders (user_id, amount) values
    (1, 10.0),
    (1, 25.0),
    (2, 5.0);
"""


@pytest.fixture(scope='session')
def psql_docker(request):
    """Session-scoped PostgreSQL container.

    Testcontainers assigns a random host port and waits for the server to
    accept connections.
    """
    postgres = pytest.importorskip('testcontainers.postgres')
    container = postgres.PostgresContainer(
        image='postgres:16',
        username='postgres',
        password='postgres',
        dbname='test_db',
    )
    try:
        container.start()
    except Exception as exc:
        pytest.skip(f'PostgreSQL container unavailable: {exc}')

    request.addfinalizer(container.stop)
    logger.info(f'PostgreSQL container started at {container.get_container_host_ip()}')
    return container


@pytest.fixture(scope='session')
def pg_options(psql_docker):
    return DatabaseOptions(
        drivername='postgresql',
        hostname=psql_docker.get_container_host_ip(),
        username='postgres',
        password='postgres',
        database='test_db',
        port=int(psql_docker.get_exposed_port(5432)),
        timeout=10,
        appname='dbmanager-tests',
    )


def stage_test_data(cn):
    """Recreate the shared tables with the same rows as the SQLite fixture"""
    cursor = cn.cursor()
    try:
        cursor.execute(SCHEMA)
    finally:
        cursor.close()


@pytest.fixture
def pg_conn(pg_options):
    """Fresh wrapped connection over freshly staged tables"""
    cn = connect(pg_options)
    stage_test_data(cn)
    yield cn
    if not cn.closed:
        cn.close()


@pytest.fixture
def pg_db(pg_conn):
    db = QueryBuilder(pg_conn)
    yield db
    db.disconnect_all()
