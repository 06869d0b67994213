import os, json, hashlib, logging, math
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Union

from openai import OpenAI, APIConnectionError, RateLimitError, BadRequestError, APITimeoutError
from pydantic import ValidationError
import redis

from cuoti.schemas import ChatMessage, TransactionCreate, TransactionItemIn

logger = logging.getLogger(__name__)

OLLAMA_BASE_URL = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434/v1")
OLLAMA_MODEL = os.getenv("OLLAMA_MODEL", "llama3.2")
OLLAMA_FALLBACK_MODEL = os.getenv("OLLAMA_FALLBACK_MODEL", "llama3")
OLLAMA_API_KEY = os.getenv("OLLAMA_API_KEY", "ollama")  # the local server ignores it, the SDK requires one
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")

HISTORY_LIMIT = 10
CACHE_TTL = 60 * 60 * 12  # 12h

APOLOGY = "Lo siento, no pude conectar con mi cerebro (Ollama). Asegúrate de que Ollama está corriendo."


class EntryParseError(Exception):
    pass


CHAT_SYSTEM = """Eres un asistente financiero útil y amable llamado "Cuoti AI".
Tu objetivo es ayudar al usuario a entender sus finanzas personales basándote en los datos que se te proporcionan.

CONTEXTO FINANCIERO ACTUAL:
{context}

REGLAS:
1. Responde de manera concisa y directa.
2. Si te preguntan por gastos futuros, basa tu respuesta SOLO en los datos provistos en el contexto. Si no hay datos, dilo.
3. Si el usuario pregunta "qué pasa si gasto X", haz un cálculo simple sumándolo a sus gastos actuales y dile cómo afectaría su total.
4. Sé empático y da consejos financieros básicos (ahorrar, evitar deudas innecesarias) cuando sea apropiado.
5. Usa formato Markdown para listas o negritas.
6. Habla siempre en español.
"""

ENTRY_SYSTEM = """Actúa como un parser de datos financieros.
Devuelve SOLO un objeto JSON, sin markdown ni texto adicional, con esta estructura:
{
    "shopName": "string",
    "date": "YYYY-MM-DD",
    "totalAmount": number,
    "installments": number,
    "items": [
        { "name": "string", "price": number, "quantity": number }
    ]
}
"""

ENTRY_TMPL = """Extrae los detalles de la transacción del texto: "{text}".

Reglas:
1. Si falta la fecha, usa hoy: {today}.
2. "installments" es 1 por defecto salvo que se especifique claramente (ej. "en 12 cuotas", "a 3 meses").
"""


def connect_cache(url: str = REDIS_URL) -> Optional[redis.Redis]:
    try:
        client = redis.Redis.from_url(url, socket_connect_timeout=0.2)
        client.ping()
        return client
    except Exception as e:
        logger.info("Redis unavailable (%s); entry parsing runs uncached", e)
        return None


def _cache_key(text: str, today: date) -> str:
    h = hashlib.sha1(f"{text}|{today.isoformat()}".encode("utf-8")).hexdigest()
    return f"entry_v1:{h}"


def _as_number(value: Any, default: float = 0.0) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    # json.loads accepts NaN and Infinity
    return number if math.isfinite(number) else default


def draft_from_payload(data: Dict[str, Any], today: date) -> TransactionCreate:
    """Model JSON -> purchase draft with the usual defaults filled in."""
    try:
        when = date.fromisoformat(str(data.get("date"))[:10])
    except ValueError:
        when = today

    items = []
    for raw in data.get("items") or []:
        if not isinstance(raw, dict) or not raw.get("name"):
            continue
        items.append(TransactionItemIn(
            name=str(raw["name"]),
            price=max(_as_number(raw.get("price")), 0.0),
            quantity=max(int(_as_number(raw.get("quantity"), 1)), 1),
        ))

    return TransactionCreate(
        shop_name=str(data.get("shopName") or "Desconocido"),
        date=when,
        total_amount=max(_as_number(data.get("totalAmount")), 0.0),
        installments=max(int(_as_number(data.get("installments"), 1)), 1),
        items=items,
        is_debt=False,
        type="purchase",
        is_recurring=False,
        tag_ids=[],
    )


class LocalAI:
    """Chat and entry parsing against a local OpenAI-compatible model server."""

    def __init__(self, client: Optional[OpenAI], model: str = OLLAMA_MODEL,
                 fallback_model: Optional[str] = OLLAMA_FALLBACK_MODEL,
                 cache: Optional[redis.Redis] = None):
        self.client = client
        self.model = model
        self.fallback_model = fallback_model
        self.cache = cache

    @classmethod
    def from_env(cls) -> "LocalAI":
        client = OpenAI(base_url=OLLAMA_BASE_URL, api_key=OLLAMA_API_KEY)
        return cls(client, OLLAMA_MODEL, OLLAMA_FALLBACK_MODEL, connect_cache())

    def _models(self) -> List[str]:
        models = [self.model]
        if self.fallback_model and self.fallback_model != self.model:
            models.append(self.fallback_model)
        return models

    # ---- chat ----

    def chat(self, messages: Iterable[Union[ChatMessage, Dict[str, str]]], context: str) -> str:
        """
        Answer the latest user message with the financial context in the
        system prompt. Never raises: connection or model failures end in
        the fixed apology text.
        """
        history = [m.model_dump() if isinstance(m, ChatMessage) else dict(m) for m in messages]
        payload = [{"role": "system", "content": CHAT_SYSTEM.format(context=context)}]
        payload += history[-HISTORY_LIMIT:]

        if not self.client:
            return APOLOGY

        for model in self._models():
            try:
                resp = self.client.chat.completions.create(model=model, messages=payload)
                return resp.choices[0].message.content.strip()
            except (APIConnectionError, APITimeoutError):
                logger.warning("Chat model %s: connection/timeout error", model)
            except RateLimitError:
                logger.warning("Chat model %s: rate limited", model)
            except BadRequestError as e:
                logger.warning("Chat model %s: bad request: %s", model, e)
            except Exception as e:
                logger.error("Chat model %s failed: %s", model, e)
        return APOLOGY

    # ---- smart entry ----

    def _get_cache(self, key: str) -> Optional[Dict[str, Any]]:
        if not self.cache:
            return None
        raw = self.cache.get(key)
        return json.loads(raw) if raw else None

    def _set_cache(self, key: str, value: Dict[str, Any]) -> None:
        if not self.cache:
            return
        self.cache.setex(key, CACHE_TTL, json.dumps(value))

    def parse_entry(self, text: str, today: Optional[date] = None, model: Optional[str] = None) -> TransactionCreate:
        """Free text such as "zapatillas 120000 en 6 cuotas" -> purchase draft."""
        today = today or date.today()
        key = _cache_key(text, today)
        cached = self._get_cache(key)
        if cached:
            return draft_from_payload(cached, today)

        if not self.client:
            raise EntryParseError("No local model client configured.")

        try:
            resp = self.client.chat.completions.create(
                model=model or self.model,
                temperature=0,
                response_format={"type": "json_object"},
                messages=[
                    {"role": "system", "content": ENTRY_SYSTEM},
                    {"role": "user", "content": ENTRY_TMPL.format(text=text, today=today.isoformat())},
                ],
            )
            content = resp.choices[0].message.content
        except (APIConnectionError, APITimeoutError) as e:
            raise EntryParseError("Local model connection/timeout error.") from e
        except Exception as e:
            raise EntryParseError(f"Local model error: {e}") from e

        try:
            data = json.loads(content)
        except (TypeError, ValueError) as e:
            raise EntryParseError("Model did not return JSON.") from e
        if not isinstance(data, dict):
            raise EntryParseError("Model returned JSON that is not an object.")

        try:
            draft = draft_from_payload(data, today)
        except ValidationError as e:
            raise EntryParseError(f"Unusable model output: {e}") from e

        self._set_cache(key, data)
        return draft

    def list_models(self) -> List[str]:
        if not self.client:
            return []
        try:
            return [m.id for m in self.client.models.list().data]
        except Exception as e:
            logger.warning("Could not list local models: %s", e)
            return []
