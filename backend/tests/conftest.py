"""
Pytest configuration and shared fixtures for BSL bot tests.
"""
import copy
import pytest
from typing import Dict, Any, List, Optional

from bslbot.core.exceptions import ProviderError
from bslbot.services.messages import MessageService
from bslbot.services.persistence import empty_conversation
from bslbot.flow.interpreter import FlowInterpreter
from bslbot.phases.handlers import PhaseHandlers

_KEEP = object()


# ==================== Fakes ====================

class FakeGateway:
    """Records outgoing WhatsApp traffic"""

    def __init__(self):
        self.texts: List[tuple] = []
        self.documents: List[tuple] = []
        self.fail_sends = False
        self.media = b"\x89PNG fake image"

    async def send_text(self, to: str, body: str) -> Dict[str, Any]:
        if self.fail_sends:
            return {"success": False, "error": "gateway down"}
        self.texts.append((to, body))
        return {"success": True, "data": {"sent": True}}

    async def send_document(self, to: str, media_url: str, caption: str = "") -> Dict[str, Any]:
        self.documents.append((to, media_url, caption))
        return {"success": True, "data": {"sent": True}}

    async def download_media(self, media_id: str) -> bytes:
        return self.media

    @property
    def bodies(self) -> List[str]:
        return [body for _, body in self.texts]


class FakeAI:
    """Scripted AI answers"""

    def __init__(self):
        self.chat_response = "Respuesta de prueba"
        self.chat_error: Optional[Exception] = None
        self.label = "otro"
        self.payment_info = {"valor": None, "banco": None, "fecha": None, "referencia": None}
        self.document_info = {"numero_documento": None, "nombre_completo": None, "tipo_documento": None}
        self.chat_calls: List[list] = []

    async def chat_complete(self, messages, max_tokens: int = 200, temperature=None) -> str:
        self.chat_calls.append(messages)
        if self.chat_error:
            raise self.chat_error
        return self.chat_response

    async def classify_image(self, base64_image: str, mime_type: str) -> str:
        return self.label

    async def extract_payment_info(self, base64_image: str, mime_type: str) -> Dict[str, Any]:
        return dict(self.payment_info)

    async def extract_document_info(self, base64_image: str, mime_type: str) -> Dict[str, Any]:
        return dict(self.document_info)


class FakeStore:
    """In-memory conversaciones table"""

    def __init__(self):
        self.rows: Dict[str, Dict[str, Any]] = {}

    async def get_conversation(self, user_id: str) -> Dict[str, Any]:
        row = self.rows.get(user_id)
        if row is None:
            return empty_conversation()
        conversation = empty_conversation()
        conversation.update(copy.deepcopy(row))
        return conversation

    async def save_conversation(self, user_id, nombre, mensajes, fase="inicial", flow_node=_KEEP):
        row = self.rows.setdefault(user_id, {})
        row["mensajes"] = copy.deepcopy(mensajes)
        row["fase"] = fase
        if nombre is not None:
            row["nombre"] = nombre
        if flow_node is not _KEEP:
            row["flow_node"] = flow_node
        return {"success": True}

    async def set_observations(self, user_id: str, observaciones: str) -> Dict[str, Any]:
        self.rows.setdefault(user_id, {})["observaciones"] = observaciones
        return {"success": True}

    async def save_flow_node(self, user_id: str, flow_node: Optional[str]) -> Dict[str, Any]:
        self.rows.setdefault(user_id, {})["flow_node"] = flow_node
        return {"success": True}

    async def delete_conversation(self, user_id: str) -> Dict[str, Any]:
        self.rows.pop(user_id, None)
        return {"success": True}

    def history(self, user_id: str) -> List[Dict[str, Any]]:
        return self.rows.get(user_id, {}).get("mensajes", [])

    def texts(self, user_id: str) -> List[str]:
        return [entry["mensaje"] for entry in self.history(user_id)]


class FakePatients:
    """BSL patient functions keyed by document number"""

    def __init__(self):
        self.patients: Dict[str, List[Dict[str, Any]]] = {}
        self.marked: List[str] = []
        self.lookup_error: Optional[Exception] = None

    async def consultar_informacion_paciente(self, numero_id: str) -> List[Dict[str, Any]]:
        if self.lookup_error:
            raise self.lookup_error
        return self.patients.get(numero_id, [])

    async def marcar_pagado(self, cedula: str) -> Dict[str, Any]:
        self.marked.append(cedula)
        return {"success": True}


class FakePDF:
    """api2pdf stand-in"""

    def __init__(self):
        self.rendered: List[str] = []
        self.fail = False

    async def render(self, documento: str) -> str:
        if self.fail:
            raise ProviderError("api2pdf", "render failed")
        self.rendered.append(documento)
        return f"https://pdf.example.com/{documento}.pdf"

    async def wait_until_available(self, url: str, attempts=None, delay=None) -> bool:
        return True


# ==================== Fixtures ====================

@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def ai() -> FakeAI:
    return FakeAI()


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def patients() -> FakePatients:
    return FakePatients()


@pytest.fixture
def pdf() -> FakePDF:
    return FakePDF()


@pytest.fixture
def message_service(gateway, store) -> MessageService:
    return MessageService(gateway, store)


@pytest.fixture
def interpreter(message_service, ai, patients, pdf, gateway, store) -> FlowInterpreter:
    """Interpreter without a graph (tests initialize their own)"""
    return FlowInterpreter(
        messages=message_service,
        ai=ai,
        patients=patients,
        pdf=pdf,
        gateway=gateway,
        store=store,
        institutional_prompt="Prompt de prueba"
    )


@pytest.fixture
def phase_handlers(message_service, ai, patients, pdf, gateway, store) -> PhaseHandlers:
    return PhaseHandlers(
        messages=message_service,
        ai=ai,
        patients=patients,
        pdf=pdf,
        gateway=gateway,
        store=store,
        institutional_prompt="Prompt de prueba"
    )


@pytest.fixture
def user_context() -> Dict[str, Any]:
    """Caller context of a fully identified user"""
    return {
        "from": "573001112233@s.whatsapp.net",
        "userId": "573001112233",
        "nombre": "Ana Pérez",
        "historial": [],
        "fase": "inicial",
    }


@pytest.fixture
def attended_patient(patients) -> str:
    """Registers an attended patient and returns the document number"""
    patients.patients["1020304050"] = [{"numeroId": "1020304050", "atendido": "ATENDIDO"}]
    return "1020304050"


def whapi_text(body: str, sender: str = "573001112233", **extra) -> Dict[str, Any]:
    """Raw Whapi text message"""
    message = {
        "id": "msg-1",
        "from": sender,
        "from_me": False,
        "type": "text",
        "chat_id": f"{sender}@s.whatsapp.net",
        "from_name": "Ana Pérez",
        "text": {"body": body},
    }
    message.update(extra)
    return message


def whapi_image(media_id: str = "media-1", sender: str = "573001112233", mime_type: str = "image/jpeg") -> Dict[str, Any]:
    """Raw Whapi image message"""
    return {
        "id": "msg-img",
        "from": sender,
        "from_me": False,
        "type": "image",
        "chat_id": f"{sender}@s.whatsapp.net",
        "from_name": "Ana Pérez",
        "image": {"id": media_id, "mime_type": mime_type},
    }


@pytest.fixture
def text_message():
    """Builder of raw Whapi text messages"""
    return whapi_text


@pytest.fixture
def image_message():
    """Builder of raw Whapi image messages"""
    return whapi_image
