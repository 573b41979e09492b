"""
Unit tests for ImageProcessor.
"""
import base64
import pytest
from bslbot.core.exceptions import ProviderError
from bslbot.services.image_processing import (
    DOCUMENT_PROMPT_AFTER_PAYMENT,
    EXAM_LIST_REPLY,
    IDENTITY_REPLY,
    IMAGE_PLACEHOLDER,
    UNKNOWN_REPLY,
    UNREADABLE_PAYMENT,
    ImageProcessor,
)

USER = "573001112233"
CHAT = f"{USER}@s.whatsapp.net"


@pytest.fixture
def processor(gateway, ai, store):
    return ImageProcessor(gateway, ai, store)


def task(**extra):
    data = {"media_id": "media-1", "mime_type": "image/jpeg", "to": CHAT, "user_id": USER, "nombre": "Ana Pérez"}
    data.update(extra)
    return data


class TestPaymentReceipts:
    """Tests for comprobante_pago images."""

    @pytest.mark.asyncio
    async def test_readable_amount_moves_to_pago(self, processor, ai, gateway, store):
        """A receipt with a value of 4+ digits asks for the document and sets pago."""
        ai.label = "comprobante_pago"
        ai.payment_info["valor"] = "$46.000"

        result = await processor.process(task())

        assert result["tipoImagen"] == "comprobante_pago"
        assert result["fase"] == "pago"
        assert result["contexto"] == "📷 Comprobante de pago recibido - Valor detectado: $46000"
        assert gateway.bodies == [DOCUMENT_PROMPT_AFTER_PAYMENT]
        assert store.rows[USER]["fase"] == "pago"
        assert store.texts(USER) == [IMAGE_PLACEHOLDER, result["contexto"], DOCUMENT_PROMPT_AFTER_PAYMENT]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("valor", ["12", None, "sin valor"])
    async def test_unreadable_amount(self, processor, ai, gateway, store, valor):
        """Short or missing amounts ask for a clearer image and keep the phase."""
        ai.label = "comprobante_pago"
        ai.payment_info["valor"] = valor
        store.rows[USER] = {"fase": "revision_certificado", "mensajes": []}

        result = await processor.process(task())

        assert result["fase"] == "revision_certificado"
        assert gateway.bodies == [UNREADABLE_PAYMENT]


class TestOtherImages:
    """Tests for the remaining classifications."""

    @pytest.mark.asyncio
    async def test_identity_document(self, processor, ai, gateway):
        """The extracted number is added to the context line."""
        ai.label = "documento_identidad"
        ai.document_info["numero_documento"] = "1020304050"

        result = await processor.process(task())

        assert result["contexto"] == "🆔 Documento de identidad recibido - Número: 1020304050"
        assert gateway.bodies == [IDENTITY_REPLY]

    @pytest.mark.asyncio
    async def test_exam_list(self, processor, ai, gateway):
        ai.label = "listado_examenes"
        result = await processor.process(task())
        assert result["fase"] == "inicial"
        assert gateway.bodies == [EXAM_LIST_REPLY]

    @pytest.mark.asyncio
    async def test_unknown_label(self, processor, gateway):
        """Unclassified images get a generic reply."""
        result = await processor.process(task())
        assert result["tipoImagen"] == "otro"
        assert gateway.bodies == [UNKNOWN_REPLY]

    @pytest.mark.asyncio
    async def test_base64_skips_download(self, processor, ai, gateway):
        """Inline base64 images are not downloaded again."""
        captured = {}

        async def classify(base64_image, mime_type):
            captured["image"] = base64_image
            return "otro"

        ai.classify_image = classify
        gateway.media = None
        inline = base64.b64encode(b"inline").decode("ascii")

        await processor.process(task(media_id=None, base64_image=inline))

        assert captured["image"] == inline

    @pytest.mark.asyncio
    async def test_download_is_base64_encoded(self, processor, ai, gateway):
        """Downloaded media is base64-encoded before classification."""
        captured = {}

        async def classify(base64_image, mime_type):
            captured["image"] = base64_image
            return "otro"

        ai.classify_image = classify
        await processor.process(task())
        assert base64.b64decode(captured["image"]) == gateway.media

    @pytest.mark.asyncio
    async def test_download_failure_propagates(self, processor, gateway):
        """Download errors are raised so the queue can retry."""
        async def broken(media_id):
            raise ProviderError("whapi", "media not found")

        gateway.download_media = broken
        with pytest.raises(ProviderError):
            await processor.process(task())
