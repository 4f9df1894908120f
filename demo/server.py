import logging
import os
from decimal import Decimal

from dotenv import load_dotenv
from fastapi import FastAPI, Request

from atxp_server import atxp_account_id, require_payment
from atxp_server.http import fastapi_atxp_middleware_from_config

load_dotenv()
logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))

app = FastAPI()

PORT = int(os.getenv("PORT", "3010"))
FUNDING_DESTINATION = os.getenv("FUNDING_DESTINATION")
PRICE = Decimal(os.getenv("PRICE", "0.01"))

if not FUNDING_DESTINATION:
    raise SystemExit("FUNDING_DESTINATION env var is required (e.g. base:0xabc...)")

middleware = fastapi_atxp_middleware_from_config(
    destinations=[FUNDING_DESTINATION],
    payee_name="ATXP Demo Server",
    mount_path="/mcp",
)


@app.middleware("http")
async def atxp_middleware(request, call_next):
    return await middleware(request, call_next)


@app.post("/mcp")
async def mcp(request: Request):
    message = await request.json()
    if isinstance(message, dict) and message.get("method") == "tools/call":
        await require_payment(PRICE)
        return {
            "jsonrpc": "2.0",
            "id": message.get("id"),
            "result": {
                "content": [{"type": "text", "text": f"Hello, {atxp_account_id()}!"}],
            },
        }
    return {"jsonrpc": "2.0", "id": message.get("id"), "result": {}}


@app.get("/health")
async def health():
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=PORT)
