import logging

from sqlmodel import Session

from promptmarket.config import settings
from promptmarket.database import engine
from promptmarket.services.payout_service import process_scheduled_payouts, schedule_payouts


def run() -> dict:
    with Session(engine) as session:
        scheduled = schedule_payouts(session)
        processed = process_scheduled_payouts(session)
    return {"scheduled": scheduled, "processed": processed}


if __name__ == "__main__":
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    run()
