from httpx import AsyncClient, Response


class PageturnClient:
    """Wraps httpx.AsyncClient and turns API responses into plain dicts for
    MCP tool results. Domain errors come back as ``{"error": True, ...}``."""

    def __init__(self, http: AsyncClient) -> None:
        self.http = http

    async def get(self, path: str, **kwargs) -> dict | list:
        resp = await self.http.get(path, **kwargs)
        return self._handle(resp)

    async def post(self, path: str, **kwargs) -> dict | list:
        resp = await self.http.post(path, **kwargs)
        return self._handle(resp)

    async def put(self, path: str, **kwargs) -> dict | list:
        resp = await self.http.put(path, **kwargs)
        return self._handle(resp)

    async def patch(self, path: str, **kwargs) -> dict | list:
        resp = await self.http.patch(path, **kwargs)
        return self._handle(resp)

    def _handle(self, resp: Response) -> dict | list:
        if resp.status_code == 204:
            return {"ok": True}
        if resp.status_code >= 500:
            raise RuntimeError(f"Server error {resp.status_code}: {resp.text}")
        if resp.status_code >= 400:
            body = resp.json()
            error = {"error": True, "status": resp.status_code, "detail": body.get("detail", resp.text)}
            if "code" in body:
                error["code"] = body["code"]
            return error
        return resp.json()
