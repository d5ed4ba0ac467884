"""Block until the Postgres behind DATABASE_URL accepts connections."""
import logging
import os
import time
from urllib.parse import urlparse

import psycopg2

logger = logging.getLogger("wait_for_db")


def wait(database_url: str | None = None, timeout_s: int | None = None) -> None:
    database_url = database_url or os.getenv("DATABASE_URL")
    if not database_url:
        raise SystemExit("DATABASE_URL is not set")
    if database_url.startswith("sqlite"):
        return

    # SQLAlchemy URL may start with postgresql+psycopg2://
    url = database_url.replace("postgresql+psycopg2://", "postgresql://").replace("postgres://", "postgresql://")
    p = urlparse(url)
    host = p.hostname or "db"
    port = p.port or 5432
    dbname = (p.path or "/grumming").lstrip("/") or "grumming"

    timeout_s = timeout_s if timeout_s is not None else int(os.getenv("DB_WAIT_TIMEOUT", "60"))
    start = time.time()
    logger.info("Waiting for Postgres at %s:%s db=%s (timeout=%ss)", host, port, dbname, timeout_s)
    while True:
        try:
            conn = psycopg2.connect(host=host, port=port, user=p.username, password=p.password, dbname=dbname)
            conn.close()
            logger.info("Postgres is ready.")
            return
        except psycopg2.OperationalError as e:
            if time.time() - start > timeout_s:
                logger.error("Timed out waiting for DB. Last error: %s", e)
                raise
            time.sleep(1)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    wait()
