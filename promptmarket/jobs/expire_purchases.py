import logging

from sqlmodel import Session

from promptmarket.config import settings
from promptmarket.database import engine
from promptmarket.services.purchase_expiry_service import expire_stale_purchases


def run() -> int:
    with Session(engine) as session:
        return expire_stale_purchases(session)


if __name__ == "__main__":
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    run()
