"""
Procura Chat Prompts - system preamble and fixed dialog texts

Contains:
- build_system_prompt(): preamble reflecting authentication state and tools
- AUTH_*: replies of the authentication dialog
"""

from typing import Iterable, Optional

BASE_PERSONALITY = "Asistente de compras."

RULES_SECTION = (
    "Sé conciso. Usa search_knowledge_base para preguntas sobre políticas, límites, procesos de compra."
)

AUTH_HINT = "Para autenticar: usuario dice su nombre, recibe código por email, luego lo ingresa."

# Authentication dialog replies
AUTH_USER_NOT_FOUND = 'No encontré "{name}". Verifica el nombre.'
AUTH_CODE_SENT = "Código enviado a {email}. Ingresa el código."
AUTH_CODE_NOT_SENT = "No pude enviar el código a {email}. Intenta de nuevo en unos minutos."
AUTH_CODE_INVALID = "Código inválido. Di tu nombre para obtener uno nuevo."
AUTH_SUCCESS = "Listo, {name}. ¿En qué te ayudo?"
AUTH_TITLE = "Chat con {name}"


def build_system_prompt(tools: Iterable, user_name: Optional[str] = None) -> str:
    """Build the system preamble.

    Args:
        tools: Registered ToolDefinitions (name, brief, requires_auth)
        user_name: Bound identity name, None while unauthenticated
    """
    authenticated = user_name is not None
    lines = [BASE_PERSONALITY + (f" Usuario: {user_name}." if authenticated else ""), "", "Herramientas:"]
    for tool in tools:
        suffix = " (requiere auth)" if tool.requires_auth and not authenticated else ""
        lines.append(f"- {tool.name}: {tool.brief or tool.description}{suffix}")
    lines.append("")
    if not authenticated:
        lines.append(AUTH_HINT)
    lines.append(RULES_SECTION)
    return "\n".join(lines)

