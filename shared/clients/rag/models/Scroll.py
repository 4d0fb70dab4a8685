from pydantic import BaseModel


class ScrollResult(BaseModel):
    """Structured output of a single scroll page or a fully-collected scroll.

    A single page is a bounded snapshot of the collection in store-internal
    order; callers must not assume it covers every point.

    Attributes:
        result:           List of point dicts ({"id", "payload", ...}).
        status:           Backend status string (e.g. "ok").
        time:             Time taken by the backend to execute the request.
        next_page_offset: Cursor (a point id) for the next page, or None when all
                          pages have been consumed. Always None on results
                          returned by do_scroll_all().
    """

    result: list[dict]
    status: str = "ok"
    time: float = 0
    next_page_offset: int | str | None = None
