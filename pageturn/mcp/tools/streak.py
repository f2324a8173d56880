from pageturn.mcp.client import PageturnClient


async def get_streak(client: PageturnClient) -> dict:
    return await client.get("/api/streak")


async def rebuild_streak(client: PageturnClient) -> dict:
    return await client.post("/api/streak/rebuild")


async def set_daily_threshold(client: PageturnClient, pages: int) -> dict:
    return await client.put("/api/streak/threshold", json={"daily_threshold": pages})


async def reading_activity(client: PageturnClient, days: int | str = 30) -> dict:
    return await client.get("/api/streak/analytics", params={"days": days})
