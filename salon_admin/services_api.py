from .access import parse_row, parse_rows, unwrap
from .cache import CollectionCache
from .schemas import Service
from .store import StoreClient

TABLE = "services"

LIST_VARIANT = "all"


async def _invalidate(cache: CollectionCache | None):
    if cache:
        await cache.invalidate(TABLE)
        # booking lists embed service names
        await cache.invalidate("bookings")


async def get_services(store: StoreClient, *, cache: CollectionCache | None = None) -> list[Service]:
    if cache:
        cached = await cache.get(TABLE, LIST_VARIANT)
        if cached is not None:
            return parse_rows(Service, cached, "Services could not be loaded")

    result = await store.table(TABLE).select("*").execute()
    rows = unwrap(result, "Services could not be loaded") or []
    services = parse_rows(Service, rows, "Services could not be loaded")

    if cache:
        await cache.set(TABLE, LIST_VARIANT, rows)
    return services


async def create_service(store: StoreClient, fields: dict, *, cache: CollectionCache | None = None) -> Service:
    result = await store.table(TABLE).insert([fields]).select().single().execute()
    row = unwrap(result, "Service could not be created")
    service = parse_row(Service, row, "Service could not be created")
    await _invalidate(cache)
    return service


async def update_service(
    store: StoreClient, service_id: int, fields: dict, *, cache: CollectionCache | None = None
) -> Service:
    result = await store.table(TABLE).update(fields).eq("id", service_id).select().single().execute()
    row = unwrap(result, "Service could not be updated")
    service = parse_row(Service, row, "Service could not be updated")
    await _invalidate(cache)
    return service


async def create_edit_service(
    store: StoreClient, fields: dict, service_id: int | None = None, *, cache: CollectionCache | None = None
) -> Service:
    """Create when no id is given, otherwise edit in place."""
    if service_id is None:
        return await create_service(store, fields, cache=cache)
    return await update_service(store, service_id, fields, cache=cache)


async def delete_service(store: StoreClient, service_id: int, *, cache: CollectionCache | None = None) -> None:
    result = await store.table(TABLE).delete().eq("id", service_id).execute()
    unwrap(result, "Service could not be deleted")
    await _invalidate(cache)
