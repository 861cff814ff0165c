"""
Tests for the tool registry dispatcher and the purchasing tools.
"""

import asyncio
from unittest.mock import AsyncMock

import httpx
import pytest
from pydantic import BaseModel

from errors import AuthenticationRequiredError, ExternalServiceError, UnknownToolError, ValidationError
from models import RequestStatus, ShoppingRequest
from services.catalog import ScoredProduct, SuconelCatalog
from services.knowledge import KnowledgeChunk
from tools import ShoppingTools, ToolCategory, ToolDefinition, ToolRegistry, register_shopping_tools
from tools.shopping import CreateShoppingRequestArgs


class EchoArgs(BaseModel):
    text: str


def _echo_tool(executor, requires_auth=False):
    return ToolDefinition(
        name="echo",
        description="Echo text back",
        parameters={"text": {"type": "string"}},
        required_params=["text"],
        args_model=EchoArgs,
        executor=executor,
        category=ToolCategory.EXTERNAL,
        requires_auth=requires_auth,
    )


async def _echo(args, user_id):
    return {"echo": args.text, "user": user_id}


def _olvadis(db):
    return asyncio.run(db.find_user_by_name("Olvadis"))


def _create_args(item):
    return CreateShoppingRequestArgs(item=item, quantity=1, estimated_price=1000)


class TestToolRegistry:
    """Dispatch outcomes and traces."""

    def test_schema(self):
        registry = ToolRegistry()
        registry.register(_echo_tool(_echo))
        [schema] = registry.get_tools_schema()
        assert schema["type"] == "function"
        assert schema["function"]["name"] == "echo"
        assert schema["function"]["parameters"] == {
            "type": "object",
            "properties": {"text": {"type": "string"}},
            "required": ["text"],
        }

    def test_success_trace(self):
        registry = ToolRegistry()
        registry.register(_echo_tool(_echo))
        execution = asyncio.run(registry.execute("echo", {"text": "hola"}, user_id="u1"))
        assert execution.success is True
        assert execution.result == {"echo": "hola", "user": "u1"}
        assert execution.trace.startswith("Executing tool: echo\nArguments: ")
        assert '"echo": "hola"' in execution.trace.split("Result: ")[1]

    def test_unknown_tool(self):
        with pytest.raises(UnknownToolError) as exc_info:
            asyncio.run(ToolRegistry().execute("launch_rocket", {}))
        assert exc_info.value.context["trace"] == "Executing tool: launch_rocket\nArguments: {}\nError: Unknown tool: launch_rocket"

    def test_auth_required_without_identity(self):
        registry = ToolRegistry()
        registry.register(_echo_tool(_echo, requires_auth=True))
        with pytest.raises(AuthenticationRequiredError) as exc_info:
            asyncio.run(registry.execute("echo", {"text": "hola"}))
        assert exc_info.value.context["trace"].endswith("Error: Authentication required to use echo")

    def test_invalid_arguments(self):
        registry = ToolRegistry()
        registry.register(_echo_tool(_echo))
        with pytest.raises(ValidationError) as exc_info:
            asyncio.run(registry.execute("echo", {}))
        assert "text" in exc_info.value.message

    def test_capability_failure_becomes_error_result(self):
        async def broken(args, user_id):
            raise RuntimeError("catalog exploded")

        registry = ToolRegistry()
        registry.register(_echo_tool(broken))
        execution = asyncio.run(registry.execute("echo", {"text": "hola"}))
        assert execution.success is False
        assert execution.result == {"error": "catalog exploded"}
        assert execution.trace.endswith("Error: catalog exploded")

    def test_error_key_marks_unsuccessful(self):
        async def soft_fail(args, user_id):
            return {"error": "nothing found"}

        registry = ToolRegistry()
        registry.register(_echo_tool(soft_fail))
        assert asyncio.run(registry.execute("echo", {"text": "x"})).success is False


class TestShoppingRegistration:
    """The three purchasing tools."""

    def test_registered_tools(self, db):
        registry = register_shopping_tools(ToolRegistry(), ShoppingTools(db))
        tools = {t.name: t for t in registry.get_all_tools()}
        assert set(tools) == {"create_shopping_request", "search_knowledge_base", "get_user_requests"}
        assert tools["create_shopping_request"].requires_auth is True
        assert tools["get_user_requests"].requires_auth is True
        assert tools["search_knowledge_base"].requires_auth is False


class TestCreateShoppingRequest:
    """create_shopping_request with and without the catalog."""

    def test_without_catalog(self, db):
        user = _olvadis(db)
        registry = register_shopping_tools(ToolRegistry(), ShoppingTools(db))
        execution = asyncio.run(registry.execute(
            "create_shopping_request", {"item": "cable HDMI", "quantity": 2, "estimatedPrice": 20000}, user_id=user.id
        ))
        assert execution.result["success"] is True
        assert execution.result["hasProducts"] is False

        [stored] = asyncio.run(db.list_requests(user.id))
        assert stored.item == "cable HDMI"
        assert stored.status == RequestStatus.PENDING

    def test_rejects_non_positive_quantity(self, db):
        user = _olvadis(db)
        registry = register_shopping_tools(ToolRegistry(), ShoppingTools(db))
        with pytest.raises(ValidationError):
            asyncio.run(registry.execute(
                "create_shopping_request", {"item": "cable", "quantity": 0, "estimatedPrice": 1}, user_id=user.id
            ))

    def test_with_priced_product_and_quotation(self, db):
        user = _olvadis(db)
        products = [
            ScoredProduct({"id": 1, "title": "Arduino Uno", "slug": "arduino-uno", "regular_price": 86000}, 80.0,
                          ["Tiene SKU (+5 pts)"]),
            ScoredProduct({"id": 2, "title": "Arduino Nano", "slug": "arduino-nano", "regular_price": 43000}, 60.0),
        ]
        catalog = AsyncMock()
        catalog.top_products = AsyncMock(return_value=products)
        quotations = AsyncMock()
        quotations.generate = AsyncMock(return_value="cotizacion-1.pdf")

        tools = ShoppingTools(db, catalog=catalog, quotations=quotations)
        registry = register_shopping_tools(ToolRegistry(), tools)
        result = asyncio.run(registry.execute(
            "create_shopping_request", {"item": "arduino", "quantity": 1, "estimatedPrice": 90000}, user_id=user.id
        )).result

        assert result["hasPrice"] is True
        assert result["product"]["name"] == "Arduino Uno"
        assert result["product"]["priceUSD"] == 20.0
        assert result["product"]["link"] == "https://suconel.com/producto/arduino-uno"
        assert result["alternativeProducts"] == [{"name": "Arduino Nano", "id": 2, "score": 60.0}]
        assert result["quotation"]["pdfDownloadUrl"].endswith(f"/quotations/{result['requestId']}/download")

        [stored] = asyncio.run(db.list_requests(user.id))
        assert stored.quotation_file == "cotizacion-1.pdf"
        assert stored.product_price_usd == 20.0
        assert stored.selected_product["name"] == "Arduino Uno"

    def test_product_without_price(self, db):
        user = _olvadis(db)
        catalog = AsyncMock()
        catalog.top_products = AsyncMock(return_value=[ScoredProduct({"id": 7, "title": "Sensor", "slug": "s"}, 10.0)])
        tools = ShoppingTools(db, catalog=catalog)
        result = asyncio.run(tools.create_shopping_request(_create_args("sensor"), user.id))
        assert result["hasPrice"] is False
        assert result["product"]["id"] == 7

    def test_catalog_failure_keeps_request(self, db):
        user = _olvadis(db)
        catalog = AsyncMock()
        catalog.top_products = AsyncMock(side_effect=ExternalServiceError("Catalog unreachable", service="catalog"))
        tools = ShoppingTools(db, catalog=catalog)
        result = asyncio.run(tools.create_shopping_request(_create_args("sensor"), user.id))
        assert result["success"] is False
        assert "Catalog unreachable" in result["error"]
        assert len(asyncio.run(db.list_requests(user.id))) == 1

    def test_non_json_catalog_reply_keeps_request(self, db):
        user = _olvadis(db)
        catalog = SuconelCatalog(base_url="https://api.suconel.test")
        catalog._client = httpx.AsyncClient(
            base_url="https://api.suconel.test",
            transport=httpx.MockTransport(lambda request: httpx.Response(200, text="<html>maintenance</html>")),
        )
        registry = register_shopping_tools(ToolRegistry(), ShoppingTools(db, catalog=catalog))

        execution = asyncio.run(registry.execute(
            "create_shopping_request", {"item": "arduino", "quantity": 1, "estimatedPrice": 90000}, user_id=user.id
        ))

        [stored] = asyncio.run(db.list_requests(user.id))
        assert execution.result["success"] is False
        assert execution.result["requestId"] == stored.id
        assert "error" in execution.result
        assert execution.result["message"].startswith("Se creó la solicitud")

    def test_quotation_failure_keeps_request(self, db):
        user = _olvadis(db)
        catalog = AsyncMock()
        catalog.top_products = AsyncMock(return_value=[
            ScoredProduct({"id": 1, "title": "Arduino Uno", "slug": "arduino-uno", "regular_price": 86000}, 80.0),
        ])
        quotations = AsyncMock()
        quotations.generate = AsyncMock(side_effect=OSError("disk full"))
        tools = ShoppingTools(db, catalog=catalog, quotations=quotations)

        result = asyncio.run(tools.create_shopping_request(_create_args("arduino"), user.id))

        [stored] = asyncio.run(db.list_requests(user.id))
        assert result["success"] is False
        assert result["requestId"] == stored.id
        assert result["error"] == "disk full"


class TestOtherTools:
    """search_knowledge_base and get_user_requests."""

    def test_search_knowledge_base(self, db):
        knowledge = AsyncMock()
        knowledge.search = AsyncMock(return_value=[KnowledgeChunk("Límite: 500.000 COP", "politicas.md")])
        registry = register_shopping_tools(ToolRegistry(), ShoppingTools(db, knowledge=knowledge))
        result = asyncio.run(registry.execute("search_knowledge_base", {"query": "límite"})).result
        assert result["results"] == [{"content": "Límite: 500.000 COP", "source": "politicas.md"}]
        knowledge.search.assert_awaited_once_with("límite", limit=5)

    def test_search_knowledge_base_no_hits(self, db):
        registry = register_shopping_tools(ToolRegistry(), ShoppingTools(db))
        result = asyncio.run(registry.execute("search_knowledge_base", {"query": "nada"})).result
        assert result["results"] == []

    def test_get_user_requests_filters_by_status(self, db):
        user = _olvadis(db)
        asyncio.run(db.create_request(ShoppingRequest("mouse", 1, 10, user.id)))
        asyncio.run(db.create_request(ShoppingRequest("teclado", 1, 10, user.id, status=RequestStatus.APPROVED)))

        registry = register_shopping_tools(ToolRegistry(), ShoppingTools(db))
        result = asyncio.run(registry.execute("get_user_requests", {"status": "APPROVED"}, user_id=user.id)).result
        assert result["total"] == 1
        assert result["requests"][0]["item"] == "teclado"
        assert result["requests"][0]["status"] == "APPROVED"
