from .access import parse_rows, unwrap
from .schemas import Staff
from .store import StoreClient

TABLE = "staff"


async def get_staff(store: StoreClient) -> list[Staff]:
    result = await store.table(TABLE).select("*").execute()
    rows = unwrap(result, "Staff could not be loaded")
    return parse_rows(Staff, rows, "Staff could not be loaded")
