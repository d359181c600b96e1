from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from datetime import datetime
from pathlib import Path
import base64
import json
import os

app = FastAPI(title="Mock Shop Server", version="1.0.0")
# Support both local development and Docker
DATA_DIR = Path("/shop_stub") if os.path.exists("/shop_stub") else Path(__file__).resolve().parent / "data"

RESOURCES = ("customers", "orders", "products")
MAX_LIMIT = 250
# Parameters the real platform accepts next to page_info
CURSOR_COMPANIONS = {"limit", "page_info"}

STORE = {name: [] for name in RESOURCES}
REQUEST_LOG = []


def load(data_dir=DATA_DIR):
    for name in RESOURCES:
        file = data_dir / f"{name}.json"
        STORE[name] = json.loads(file.read_text())[name] if file.exists() else []


def seed(customers=(), orders=(), products=()):
    STORE["customers"] = list(customers)
    STORE["orders"] = list(orders)
    STORE["products"] = list(products)
    REQUEST_LOG.clear()


def _ts(value):
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _matches(item, params):
    if params.get("status", "any") != "any" and item.get("financial_status") != params["status"]:
        return False
    if "created_at_min" in params and _ts(item["created_at"]) < _ts(params["created_at_min"]):
        return False
    if "created_at_max" in params and _ts(item["created_at"]) > _ts(params["created_at_max"]):
        return False
    return True


def _encode(filters, offset):
    return base64.urlsafe_b64encode(json.dumps({"f": filters, "o": offset}).encode()).decode()


def _decode(token):
    data = json.loads(base64.urlsafe_b64decode(token.encode()))
    return data["f"], data["o"]


@app.get("/health")
def health(): return {"status": "ok"}


def _paginate(request, version, route, items):
    params = dict(request.query_params)
    REQUEST_LOG.append((route, params))

    limit = int(params.get("limit", 50))
    if limit > MAX_LIMIT:
        raise HTTPException(status_code=400, detail=f"limit must be <= {MAX_LIMIT}")

    if "page_info" in params:
        extra = set(params) - CURSOR_COMPANIONS
        if extra:
            raise HTTPException(status_code=400, detail=f"page_info cannot be combined with {sorted(extra)}")
        filters, offset = _decode(params["page_info"])
    else:
        filters = {k: v for k, v in params.items() if k != "limit"}
        offset = 0

    matching = sorted((i for i in items if _matches(i, filters)), key=lambda i: i["id"])
    page = matching[offset:offset + limit]
    body = {route.rsplit("/", 1)[-1]: page}

    headers = {}
    if offset + limit < len(matching):
        url = f"{request.base_url}admin/api/{version}/{route}.json?limit={limit}&page_info={_encode(filters, offset + limit)}"
        headers["Link"] = f'<{url}>; rel="next"'
    return JSONResponse(content=body, headers=headers)


@app.get("/admin/api/{version}/customers/{customer_id}/orders.json")
def list_customer_orders(version: str, customer_id: int, request: Request):
    orders = [o for o in STORE["orders"] if (o.get("customer") or {}).get("id") == customer_id]
    return _paginate(request, version, f"customers/{customer_id}/orders", orders)


@app.get("/admin/api/{version}/{resource}/count.json")
def count(version: str, resource: str):
    if resource not in STORE:
        raise HTTPException(status_code=404, detail="not found")
    return {"count": len(STORE[resource])}


@app.get("/admin/api/{version}/{resource}/{item_id}.json")
def get_one(version: str, resource: str, item_id: int):
    singular = resource.rstrip("s")
    for item in STORE.get(resource, []):
        if item["id"] == item_id:
            return {singular: item}
    raise HTTPException(status_code=404, detail=f"{singular} not found")


@app.get("/admin/api/{version}/{resource}.json")
def list_collection(version: str, resource: str, request: Request):
    if resource not in STORE:
        raise HTTPException(status_code=404, detail="not found")
    return _paginate(request, version, resource, STORE[resource])


load()
