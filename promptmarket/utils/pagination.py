from sqlalchemy import func
from sqlmodel import select

MAX_PAGE_SIZE = 100


def paginate(
    *,
    session,
    query,
    page: int = 1,
    limit: int = 15,
):
    if page < 1:
        page = 1

    if limit < 1:
        limit = 15
    limit = min(limit, MAX_PAGE_SIZE)

    offset = (page - 1) * limit

    # ordering is irrelevant to the count and breaks some subqueries
    total = session.exec(
        select(func.count()).select_from(query.order_by(None).subquery())
    ).one()

    results = session.exec(
        query.offset(offset).limit(limit)
    ).all()

    return {
        "total_items": total,
        "total_pages": (total + limit - 1) // limit,
        "current_page": page,
        "limit": limit,
        "has_next": page * limit < total,
        "results": results,
    }


def serialize_page(page: dict, schema) -> dict:
    """Swap table rows for their public schema, keeping the paging keys."""
    return {**page, "results": [schema.model_validate(row) for row in page["results"]]}
