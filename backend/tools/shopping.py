"""
Purchasing tools: create_shopping_request, search_knowledge_base,
get_user_requests.

Arguments are validated by the pydantic models below before the executors
run. ``register_shopping_tools`` wires the executors to their
collaborators and adds them to a registry.
"""

import logging
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from config import runtime_config
from errors import NotFoundError, success_response
from models import RequestStatus, ShoppingRequest
from services.catalog import ProductCatalog, QuotationGenerator, ScoredProduct, convert_cop_to_usd
from services.database import Database
from services.knowledge import KnowledgeBase

from .registry import ToolCategory, ToolDefinition, ToolRegistry

logger = logging.getLogger(__name__)

QUOTATION_DOWNLOAD_PATH = "/api/v1/quotations/{request_id}/download"


# =============================================================================
# ARGUMENT MODELS
# =============================================================================


class CreateShoppingRequestArgs(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    item: str = Field(min_length=1)
    quantity: int = Field(gt=0)
    estimated_price: float = Field(alias="estimatedPrice", ge=0)
    justification: Optional[str] = None


class SearchKnowledgeArgs(BaseModel):
    query: str = Field(min_length=1)


class GetUserRequestsArgs(BaseModel):
    status: Optional[RequestStatus] = None


# =============================================================================
# EXECUTORS
# =============================================================================


class ShoppingTools:
    """Executors bound to their collaborators."""

    def __init__(
        self,
        db: Database,
        knowledge: Optional[KnowledgeBase] = None,
        catalog: Optional[ProductCatalog] = None,
        quotations: Optional[QuotationGenerator] = None,
    ):
        self.db = db
        self.knowledge = knowledge
        self.catalog = catalog
        self.quotations = quotations

    async def create_shopping_request(self, args: CreateShoppingRequestArgs, user_id: Optional[str]) -> Dict[str, Any]:
        user = await self.db.get_user(user_id)
        if user is None:
            raise NotFoundError("User not found", resource_type="user", resource_id=user_id)

        request = await self.db.create_request(ShoppingRequest(
            item=args.item,
            quantity=args.quantity,
            estimated_price=args.estimated_price,
            justification=args.justification,
            requested_by_id=user.id,
        ))
        logger.info(f"Shopping request created: {request.id} ({args.item} x{args.quantity}) for {user.name}")

        if self.catalog is None:
            return success_response(
                requestId=request.id,
                message=f"Solicitud creada para {args.quantity} x {args.item}.",
                hasProducts=False,
            )

        try:
            return await self._attach_products(request, user)
        except Exception as e:
            # The request row already exists at this point
            logger.warning(f"Product lookup failed for request {request.id}: {e}", exc_info=True)
            return {
                "success": False,
                "requestId": request.id,
                "error": str(e),
                "message": "Se creó la solicitud pero hubo un error al buscar productos. Por favor intenta de nuevo.",
            }

    async def _attach_products(self, request: ShoppingRequest, user) -> Dict[str, Any]:
        top = await self.catalog.top_products(request.item)
        if not top:
            return success_response(
                requestId=request.id,
                message=(
                    f'Solicitud creada, pero no se encontraron productos para "{request.item}". '
                    "Intenta con un término más específico."
                ),
                hasProducts=False,
            )

        best = top[0]
        request = await self.db.update_request(
            request.id,
            search_results=[p.summary() for p in top],
            selected_product=best.summary(),
            product_link=best.link,
        )
        logger.info(f"Best product for {request.id}: {best.title} (score {best.score:.1f})")

        if not best.price:
            return {
                "success": True,
                "requestId": request.id,
                "hasPrice": False,
                "message": (
                    f'Encontré el producto "{best.title}", pero no hay información de precio disponible. '
                    "Visita el enlace para ver los detalles."
                ),
                "product": {"name": best.title, "link": best.link, "id": best.product.get("id")},
            }

        price_usd = round(convert_cop_to_usd(best.price, runtime_config.cop_to_usd_rate), 2)
        result = {
            "success": True,
            "requestId": request.id,
            "hasPrice": True,
            "message": "¡Solicitud completada! Encontré el mejor producto para ti.",
            "product": {
                "name": best.title,
                "price": best.price,
                "currency": "COP",
                "priceUSD": price_usd,
                "link": best.link,
                "score": round(best.score, 1),
                "reasons": best.reasons,
            },
            "alternativeProducts": [_alternative(p) for p in top[1:3]],
        }

        changes: Dict[str, Any] = {"product_price_usd": price_usd}
        if self.quotations is not None:
            changes["quotation_file"] = await self.quotations.generate({
                "requestId": request.id,
                "userName": user.name,
                "userEmail": user.email,
                "item": request.item,
                "quantity": request.quantity,
                "estimatedPrice": request.estimated_price,
                "productName": best.title,
                "productLink": best.link,
                "productPrice": best.price,
                "productCurrency": "COP",
                "priceUSD": price_usd,
                "createdAt": request.created_at.isoformat(),
            })
            download = QUOTATION_DOWNLOAD_PATH.format(request_id=request.id)
            result["quotation"] = {
                "pdfDownloadUrl": download,
                "fullUrl": f"{runtime_config.frontend_url.rstrip('/')}{download}",
            }
        await self.db.update_request(request.id, **changes)
        return result

    async def search_knowledge_base(self, args: SearchKnowledgeArgs, user_id: Optional[str]) -> Dict[str, Any]:
        if self.knowledge is None:
            return {"results": [], "message": "No se encontró información relevante."}

        chunks = await self.knowledge.search(args.query, limit=5)
        if not chunks:
            return {"results": [], "message": "No se encontró información relevante."}
        return {
            "results": [c.to_dict() for c in chunks],
            "message": f"{len(chunks)} resultados encontrados",
        }

    async def get_user_requests(self, args: GetUserRequestsArgs, user_id: Optional[str]) -> Dict[str, Any]:
        requests = await self.db.list_requests(user_id, status=args.status, limit=10)
        return {
            "requests": [
                {
                    "id": r.id,
                    "item": r.item,
                    "quantity": r.quantity,
                    "status": r.status.value,
                    "createdAt": r.created_at.isoformat(),
                }
                for r in requests
            ],
            "total": len(requests),
        }


def _alternative(product: ScoredProduct) -> Dict[str, Any]:
    return {"name": product.title, "id": product.product.get("id"), "score": round(product.score, 1)}


# =============================================================================
# REGISTRATION
# =============================================================================


def register_shopping_tools(registry: ToolRegistry, tools: ShoppingTools) -> ToolRegistry:
    """Register the purchasing tools on ``registry``."""
    registry.register(ToolDefinition(
        name="create_shopping_request",
        description=(
            "Creates a new shopping request in the database. Use when user wants to request purchase of items."
        ),
        parameters={
            "item": {"type": "string", "description": "Item name to purchase"},
            "quantity": {"type": "number", "description": "Quantity needed"},
            "estimatedPrice": {"type": "number", "description": "Estimated price per unit"},
            "justification": {"type": "string", "description": "Reason for purchase"},
        },
        required_params=["item", "quantity", "estimatedPrice"],
        args_model=CreateShoppingRequestArgs,
        executor=tools.create_shopping_request,
        category=ToolCategory.REQUESTS,
        requires_auth=True,
        brief="crear solicitudes",
    ))

    registry.register(ToolDefinition(
        name="search_knowledge_base",
        description=(
            "Busca en la base de conocimiento (políticas de compras, límites de presupuesto, procedimientos, "
            "FAQs). USA esta herramienta cuando el usuario pregunta sobre políticas, procesos, límites o "
            "cualquier información corporativa."
        ),
        parameters={
            "query": {"type": "string", "description": "Consulta de búsqueda sobre políticas o procedimientos"},
        },
        required_params=["query"],
        args_model=SearchKnowledgeArgs,
        executor=tools.search_knowledge_base,
        category=ToolCategory.KNOWLEDGE,
        brief="buscar políticas/procedimientos (USA SIEMPRE para preguntas sobre políticas o procesos)",
    ))

    registry.register(ToolDefinition(
        name="get_user_requests",
        description="Gets shopping requests history for the authenticated user.",
        parameters={
            "status": {
                "type": "string",
                "enum": [s.value for s in RequestStatus],
                "description": "Filter by status (optional)",
            },
        },
        required_params=[],
        args_model=GetUserRequestsArgs,
        executor=tools.get_user_requests,
        category=ToolCategory.REQUESTS,
        requires_auth=True,
        brief="consultar historial",
    ))

    return registry
