from .access import parse_row, parse_rows, unwrap
from .schemas import Client
from .store import StoreClient

TABLE = "client"


async def get_clients(store: StoreClient) -> list[Client]:
    result = await store.table(TABLE).select("*").order("fullName").execute()
    rows = unwrap(result, "Clients could not be loaded")
    return parse_rows(Client, rows, "Clients could not be loaded")


async def create_client(store: StoreClient, fields: dict) -> Client:
    result = await store.table(TABLE).insert([fields]).select().single().execute()
    row = unwrap(result, "Client could not be created")
    return parse_row(Client, row, "Client could not be created")
