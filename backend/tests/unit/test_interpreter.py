"""
Unit tests for FlowInterpreter.
"""
import pytest
from bslbot.core.exceptions import GraphInvalid, LoopLimitExceeded, NodeNotFound, ProviderError
from bslbot.flow.interpreter import AI_FALLBACK, DOCUMENT_REQUEST, PAYMENT_ERROR
from bslbot.services.pdf import CERTIFICATE_CAPTION


def node(node_id, node_type, **data):
    data.setdefault("title", node_id)
    return {"id": node_id, "type": node_type, "data": data}


def graph(nodes, edges):
    return {"nodes": nodes, "connections": [{"from": a, "to": b} for a, b in edges]}


@pytest.fixture
def menu_graph():
    """start -> menu [A, B, C] with one edge per option"""
    return graph(
        [
            node("start", "start"),
            node("menu", "menu", title="Elige", options=[
                {"text": "A"}, {"text": "B"}, {"text": "C"},
            ]),
            node("a", "message", text="Elegiste A"),
            node("b", "message", text="Elegiste B"),
            node("c", "message", text="Elegiste C"),
        ],
        [("start", "menu"), ("menu", "a"), ("menu", "b"), ("menu", "c")],
    )


class TestInitialization:
    """Tests for graph loading and structural failures."""

    def test_connections_keep_order(self, interpreter, menu_graph):
        """Outgoing connections should keep declaration order."""
        interpreter.initialize_flow(menu_graph)
        assert interpreter.next_nodes("menu") == ["a", "b", "c"]
        assert interpreter.get_start_node() == "start"

    @pytest.mark.parametrize("flow", [
        None,
        {},
        {"nodes": "x"},
        {"nodes": [{"type": "start"}]},
        {"nodes": [{"id": "start", "type": "start", "data": {"title": "Inicio"}}], "connections": "x"},
    ])
    def test_malformed_flow(self, interpreter, flow):
        """Missing or malformed nodes should raise GraphInvalid."""
        with pytest.raises(GraphInvalid):
            interpreter.initialize_flow(flow)

    @pytest.mark.asyncio
    async def test_not_initialized(self, interpreter):
        """Running before initialization should raise GraphInvalid."""
        with pytest.raises(GraphInvalid):
            await interpreter.execute_flow("hola", {})

    def test_no_start_node(self, interpreter):
        """A graph without start node should be rejected at load."""
        with pytest.raises(GraphInvalid):
            interpreter.initialize_flow(graph([node("m", "message", text="x")], []))
        assert not interpreter.is_initialized

    def test_dangling_connection_rejected(self, interpreter):
        """A connection to a missing node should be rejected at load."""
        with pytest.raises(GraphInvalid) as exc_info:
            interpreter.initialize_flow(graph([node("start", "start")], [("start", "ghost")]))

        assert "ghost" in str(exc_info.value)
        assert not interpreter.is_initialized

    def test_invalid_graph_keeps_previous(self, interpreter, menu_graph):
        """A rejected graph should leave the loaded one in place."""
        interpreter.initialize_flow(menu_graph)
        with pytest.raises(GraphInvalid):
            interpreter.initialize_flow(graph([node("start", "start")], [("start", "ghost")]))
        assert interpreter.next_nodes("menu") == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_unknown_resume_node(self, interpreter):
        """Resuming at a missing node should raise NodeNotFound."""
        interpreter.initialize_flow(graph([node("start", "start")], []))
        with pytest.raises(NodeNotFound) as exc_info:
            await interpreter.execute_flow("hola", {}, start_node_id="ghost")
        assert exc_info.value.node_id == "ghost"


class TestExecution:
    """Tests for the run loop."""

    @pytest.mark.asyncio
    async def test_cycle_hits_iteration_cap(self, interpreter, gateway, user_context):
        """A cyclic graph should stop after 20 node executions."""
        interpreter.initialize_flow(graph(
            [node("start", "start"), node("a", "message", text="A"), node("b", "message", text="B")],
            [("start", "a"), ("a", "b"), ("b", "a")],
        ))

        with pytest.raises(LoopLimitExceeded) as exc_info:
            await interpreter.execute_flow("hola", user_context)

        assert exc_info.value.max_iterations == 20
        # start + 19 message nodes
        assert len(gateway.texts) == 19

    @pytest.mark.asyncio
    async def test_message_then_end(self, interpreter, gateway, store, user_context):
        """Messages should be delivered, persisted and the run completed at end."""
        interpreter.initialize_flow(graph(
            [node("start", "start"), node("hi", "message", text="Hola"), node("end", "end")],
            [("start", "hi"), ("hi", "end")],
        ))

        outcome = await interpreter.execute_flow("buenas", user_context)

        assert not outcome.waiting
        assert outcome.response == "Conversación finalizada"
        assert outcome.iterations == 3
        assert gateway.texts == [("573001112233@s.whatsapp.net", "Hola")]
        assert store.texts("573001112233") == ["Hola"]

    @pytest.mark.asyncio
    async def test_final_response_defaults(self, interpreter):
        """A run ending on a silent node should answer Procesado."""
        interpreter.initialize_flow(graph([node("start", "start")], []))
        outcome = await interpreter.execute_flow("hola", {})
        assert outcome.response == "Procesado"

    @pytest.mark.asyncio
    async def test_no_delivery_without_identity(self, interpreter, gateway):
        """Nodes should not send when the recipient is not fully known."""
        interpreter.initialize_flow(graph(
            [node("start", "start"), node("hi", "message", text="Hola")],
            [("start", "hi")],
        ))
        outcome = await interpreter.execute_flow("hola", {"from": "573001112233@s.whatsapp.net"})
        assert outcome.response == "Hola"
        assert gateway.texts == []

    @pytest.mark.asyncio
    async def test_from_becomes_to(self, interpreter):
        """The caller's from should be exposed as to in the context."""
        interpreter.initialize_flow(graph([node("start", "start")], []))
        outcome = await interpreter.execute_flow("hola", {"from": "57300@s.whatsapp.net"})
        assert outcome.context.to == "57300@s.whatsapp.net"
        assert outcome.context.user_message == "hola"


class TestMenus:
    """Tests for menu suspension and resolution."""

    @pytest.mark.asyncio
    async def test_menu_suspends(self, interpreter, menu_graph, user_context):
        """A menu should render its options and wait."""
        interpreter.initialize_flow(menu_graph)
        outcome = await interpreter.execute_flow("hola", user_context)

        assert outcome.waiting
        assert outcome.node_id == "menu"
        assert outcome.response == "Elige\n\n1️⃣ A\n2️⃣ B\n3️⃣ C\n"
        assert outcome.context.get("menuOptions") == [{"text": "A"}, {"text": "B"}, {"text": "C"}]

    def test_choice_follows_positional_edge(self, interpreter, menu_graph):
        """Reply 2 should follow the second connection."""
        interpreter.initialize_flow(menu_graph)
        assert interpreter.process_menu_response("menu", "2") == "b"
        assert interpreter.process_menu_response("menu", " 3 ") == "c"

    def test_choice_prefers_explicit_next(self, interpreter, menu_graph):
        """An option with next should win over the positional edge."""
        menu_graph["nodes"][1]["data"]["options"][1]["next"] = "c"
        interpreter.initialize_flow(menu_graph)
        assert interpreter.process_menu_response("menu", "2") == "c"

    @pytest.mark.parametrize("reply", ["4", "0", "dos", ""])
    def test_invalid_choice(self, interpreter, menu_graph, reply):
        """Out-of-range or non-numeric replies should resolve to None."""
        interpreter.initialize_flow(menu_graph)
        assert interpreter.process_menu_response("menu", reply) is None

    def test_choice_without_enough_edges_uses_first(self, interpreter):
        """With fewer edges than options the first edge should be used."""
        interpreter.initialize_flow(graph(
            [node("start", "start"), node("menu", "menu", options=[{"text": "A"}, {"text": "B"}]),
             node("a", "message", text="A")],
            [("start", "menu"), ("menu", "a")],
        ))
        assert interpreter.process_menu_response("menu", "2") == "a"

    def test_non_menu_node(self, interpreter, menu_graph):
        """Menu resolution on other node types should return None."""
        interpreter.initialize_flow(menu_graph)
        assert interpreter.process_menu_response("a", "1") is None

    def test_render_menu(self, interpreter, menu_graph):
        """render_menu should reproduce the menu text."""
        interpreter.initialize_flow(menu_graph)
        assert interpreter.render_menu("menu").startswith("Elige\n\n1️⃣ A")


class TestInputs:
    """Tests for input nodes."""

    @pytest.fixture
    def input_graph(self):
        return graph(
            [node("start", "start"), node("doc", "input", prompt="Tu documento", validation="cedula"),
             node("mail", "input", validation="email"), node("qty", "input", validation="number"),
             node("free", "input"), node("done", "end")],
            [("start", "doc"), ("doc", "done")],
        )

    @pytest.mark.asyncio
    async def test_input_suspends_with_prompt(self, interpreter, input_graph):
        """An input node should wait with its prompt and validation."""
        interpreter.initialize_flow(input_graph)
        outcome = await interpreter.execute_flow("hola", {})
        assert outcome.waiting
        assert outcome.response == "Tu documento"
        assert outcome.context.get("validation") == "cedula"

    def test_valid_cedula(self, interpreter, input_graph):
        """A valid cédula should return the next node."""
        interpreter.initialize_flow(input_graph)
        result = interpreter.process_input_response("doc", "1020304050")
        assert result == {"valid": True, "value": "1020304050", "nextNode": "done"}

    @pytest.mark.parametrize("node_id,reply,validation", [
        ("doc", "abc", "cedula"),
        ("doc", "1111111", "cedula"),
        ("mail", "no-es-correo", "email"),
        ("qty", "doce", "number"),
        ("free", "   ", "text"),
    ])
    def test_invalid_replies(self, interpreter, input_graph, node_id, reply, validation):
        """Invalid replies should carry the validation kind in the error."""
        interpreter.initialize_flow(input_graph)
        result = interpreter.process_input_response(node_id, reply)
        assert result == {"valid": False, "error": f"Formato inválido para {validation}"}

    def test_number_accepts_decimals(self, interpreter, input_graph):
        """Numbers should be parsed as floats."""
        interpreter.initialize_flow(input_graph)
        assert interpreter.process_input_response("qty", "3.5")["valid"]

    def test_non_input_node(self, interpreter, input_graph):
        """Input validation on other node types should return None."""
        interpreter.initialize_flow(input_graph)
        assert interpreter.process_input_response("start", "x") is None


class TestConditions:
    """Tests for condition routing."""

    @pytest.fixture
    def condition_graph(self):
        return graph(
            [node("start", "start"),
             node("check", "condition", variable="userMessage", operator="contains", value="pagar"),
             node("yes", "message", text="Te paso los datos de pago"),
             node("no", "message", text="¿En qué más te ayudo?")],
            [("start", "check"), ("check", "yes"), ("check", "no")],
        )

    @pytest.mark.asyncio
    async def test_true_branch(self, interpreter, condition_graph):
        """A met condition should follow the first edge."""
        interpreter.initialize_flow(condition_graph)
        outcome = await interpreter.execute_flow("Quiero PAGAR", {})
        assert outcome.response == "Te paso los datos de pago"
        assert outcome.context.get("conditionMet") is True
        assert outcome.context.get("testValue") == "Quiero PAGAR"

    @pytest.mark.asyncio
    async def test_false_branch(self, interpreter, condition_graph):
        """An unmet condition should follow the second edge."""
        interpreter.initialize_flow(condition_graph)
        outcome = await interpreter.execute_flow("hola", {})
        assert outcome.response == "¿En qué más te ayudo?"

    @pytest.mark.asyncio
    async def test_false_branch_without_second_edge(self, interpreter, condition_graph):
        """Without a false edge the first edge should be used."""
        condition_graph["connections"] = condition_graph["connections"][:2]
        interpreter.initialize_flow(condition_graph)
        outcome = await interpreter.execute_flow("hola", {})
        assert outcome.response == "Te paso los datos de pago"


class TestProviderNodes:
    """Tests for nodes backed by external services."""

    @pytest.mark.asyncio
    async def test_ai_node(self, interpreter, ai, user_context):
        """The AI node should send prompt, history and message."""
        user_context["historial"] = [
            {"from": "usuario", "mensaje": "hola"},
            {"from": "sistema", "mensaje": "¿En qué te ayudo?"},
        ]
        interpreter.initialize_flow(graph(
            [node("start", "start"), node("ia", "ai", prompt="Eres BSL")], [("start", "ia")]
        ))

        outcome = await interpreter.execute_flow("precio?", user_context)

        assert outcome.response == "Respuesta de prueba"
        sent = ai.chat_calls[0]
        assert sent[0] == {"role": "system", "content": "Eres BSL"}
        assert [m["role"] for m in sent[1:]] == ["user", "assistant", "user"]
        assert sent[-1]["content"] == "precio?"

    @pytest.mark.asyncio
    async def test_ai_node_fallback(self, interpreter, ai):
        """Provider failures should degrade to the fallback text."""
        ai.chat_error = ProviderError("openai", "timeout")
        interpreter.initialize_flow(graph([node("start", "start"), node("ia", "ai")], [("start", "ia")]))

        outcome = await interpreter.execute_flow("hola", {})
        assert outcome.response == AI_FALLBACK

    @pytest.mark.asyncio
    async def test_api_unknown_endpoint(self, interpreter):
        """Unknown endpoints should produce an error result, not raise."""
        interpreter.initialize_flow(graph(
            [node("start", "start"), node("api", "api", endpoint="otraCosa")], [("start", "api")]
        ))
        outcome = await interpreter.execute_flow("hola", {})
        assert outcome.context.get("apiResult") == {"error": "Endpoint no configurado"}

    @pytest.mark.asyncio
    async def test_api_patient_lookup(self, interpreter, attended_patient):
        """The patient lookup should use the user message as document."""
        interpreter.initialize_flow(graph(
            [node("start", "start"), node("api", "api", endpoint="consultarInformacionPaciente")],
            [("start", "api")],
        ))
        outcome = await interpreter.execute_flow(attended_patient, {})
        assert outcome.context.get("apiResult")[0]["atendido"] == "ATENDIDO"

    @pytest.mark.asyncio
    async def test_api_provider_error(self, interpreter, patients):
        """Lookup failures should land in apiResult.error."""
        patients.lookup_error = ProviderError("bsl", "HTTP 500")
        interpreter.initialize_flow(graph(
            [node("start", "start"), node("api", "api", endpoint="consultarInformacionPaciente")],
            [("start", "api")],
        ))
        outcome = await interpreter.execute_flow("1020304050", {})
        assert "HTTP 500" in outcome.context.get("apiResult")["error"]


class TestPaymentAndPdf:
    """Tests for the payment / certificate branch."""

    @pytest.fixture
    def payment_graph(self):
        return graph(
            [node("start", "start"), node("pay", "payment"), node("pdf", "pdf"), node("end", "end")],
            [("start", "pay"), ("pay", "pdf"), ("pdf", "end")],
        )

    @pytest.mark.asyncio
    async def test_payment_waits_for_cedula(self, interpreter, payment_graph, gateway, user_context):
        """Without a valid cédula the payment node should ask for it and wait."""
        interpreter.initialize_flow(payment_graph)
        outcome = await interpreter.execute_flow("ya pagué", user_context)

        assert outcome.waiting
        assert outcome.node_id == "pay"
        assert outcome.context.get("needsCedula") is True
        assert gateway.bodies == [DOCUMENT_REQUEST]

    @pytest.mark.asyncio
    async def test_payment_and_certificate(
        self, interpreter, payment_graph, gateway, patients, pdf, attended_patient, user_context
    ):
        """A cédula should mark the payment and deliver the certificate."""
        interpreter.initialize_flow(payment_graph)
        outcome = await interpreter.execute_flow(attended_patient, user_context)

        assert not outcome.waiting
        assert patients.marked == [attended_patient]
        assert pdf.rendered == [attended_patient]
        assert outcome.context.get("pdfGenerated") is True
        assert outcome.context.get("template") == "certificate"
        assert gateway.documents == [(
            "573001112233@s.whatsapp.net",
            f"https://pdf.example.com/{attended_patient}.pdf",
            CERTIFICATE_CAPTION,
        )]

    @pytest.mark.asyncio
    async def test_payment_provider_error(self, interpreter, payment_graph, gateway, patients, user_context):
        """Lookup failures should apologise and continue with paymentProcessed false."""
        patients.lookup_error = ProviderError("bsl", "down")
        interpreter.initialize_flow(payment_graph)

        outcome = await interpreter.execute_flow("1020304050", user_context)

        assert outcome.context.get("paymentProcessed") is False
        assert PAYMENT_ERROR in gateway.bodies

    @pytest.mark.asyncio
    async def test_pdf_without_cedula(self, interpreter, pdf):
        """The PDF node should report an error when no cédula is known."""
        interpreter.initialize_flow(graph([node("start", "start"), node("pdf", "pdf")], [("start", "pdf")]))
        outcome = await interpreter.execute_flow("hola", {})
        assert outcome.context.get("pdfGenerated") is False
        assert pdf.rendered == []


class TestTransferAndMisc:
    """Tests for transfer, image and end nodes."""

    @pytest.mark.asyncio
    async def test_transfer_sets_stop(self, interpreter, store, gateway, user_context):
        """Transfer should notify the user and block the bot."""
        interpreter.initialize_flow(graph([node("start", "start"), node("t", "transfer")], [("start", "t")]))

        outcome = await interpreter.execute_flow("asesor", user_context)

        assert outcome.response == "...transfiriendo con asesor"
        assert outcome.context.get("transferred") is True
        assert store.rows["573001112233"]["observaciones"] == "stop"
        assert gateway.bodies == ["...transfiriendo con asesor"]

    @pytest.mark.asyncio
    async def test_image_placeholder(self, interpreter):
        """Image nodes should only mark the context."""
        interpreter.initialize_flow(graph([node("start", "start"), node("img", "image")], [("start", "img")]))
        outcome = await interpreter.execute_flow("", {})
        assert outcome.context.get("imageProcessed") is True
        assert outcome.context.get("action") == "classify"

    @pytest.mark.asyncio
    async def test_end_message(self, interpreter):
        """End nodes should complete the run with their message."""
        interpreter.initialize_flow(graph(
            [node("start", "start"), node("end", "end", message="Gracias")], [("start", "end")]
        ))
        outcome = await interpreter.execute_flow("", {})
        assert outcome.response == "Gracias"
        assert outcome.result.completed
