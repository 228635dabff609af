"""In-memory fakes of the Qdrant and Ollama REST APIs for ``httpx.MockTransport``."""

import json
import math
import re
import zlib

import httpx

VECTOR_SIZE = 64


def database_url_for(directory) -> str:
    """File database, so background ingestions and requests use separate connections."""
    return f"sqlite+aiosqlite:///{directory}/doc_chat_test.db"


##########################################
############## FAKE BACKENDS #############
##########################################

def fake_embedding(text: str) -> list[float]:
    """Deterministic bag-of-words vector: texts sharing words are similar."""
    vector = [0.0] * VECTOR_SIZE
    vector[0] = 0.1  # never a zero vector
    for token in re.findall(r"[a-z0-9]+", text.lower()):
        vector[1 + zlib.crc32(token.encode()) % (VECTOR_SIZE - 1)] += 1.0
    return vector


def _cosine(a: list[float], b: list[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


class FakeQdrant:
    """Minimal in-memory Qdrant REST API for one collection."""

    def __init__(self, collection: str = "test-chunks"):
        self.collection = collection
        self.exists = False
        self.vector_size: int | None = None
        self.payload_indexes: set[str] = set()
        self.points: dict[str, dict] = {}
        self.search_requests: list[dict] = []
        # operation names ("upsert", "search", "delete", ...) answered with 500
        self.fail_on: set[str] = set()
        # extra hits appended to every search result, e.g. foreign points
        self.injected_hits: list[dict] = []

    def _matches(self, payload: dict, flt: dict | None) -> bool:
        for cond in (flt or {}).get("must", []):
            if str(payload.get(cond["key"])) != str(cond["match"]["value"]):
                return False
        return True

    def _reply(self, operation: str, result) -> httpx.Response:
        if operation in self.fail_on:
            return httpx.Response(500, json={"status": {"error": f"{operation} failed"}})
        return httpx.Response(200, json={"result": result, "status": "ok"})

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        base = f"/collections/{self.collection}"
        body = json.loads(request.content) if request.content else {}

        if path == "/healthz":
            return httpx.Response(200, text="healthz check passed")
        if path == f"{base}/exists":
            return self._reply("exists", {"exists": self.exists})
        if path == base and request.method == "PUT":
            self.exists = True
            self.vector_size = body["vectors"]["size"]
            return self._reply("create", True)
        if path == f"{base}/index":
            self.payload_indexes.add(body["field_name"])
            return self._reply("index", {"status": "acknowledged"})
        if path == f"{base}/points" and request.method == "PUT":
            if "upsert" not in self.fail_on:
                for point in body["points"]:
                    self.points[str(point["id"])] = {"vector": point["vector"], "payload": point["payload"]}
            return self._reply("upsert", {"status": "completed"})
        if path == f"{base}/points/search":
            self.search_requests.append(body)
            hits = [
                {"id": pid, "score": _cosine(body["vector"], point["vector"]), "payload": point["payload"]}
                for pid, point in self.points.items()
                if self._matches(point["payload"], body.get("filter"))
            ]
            hits.sort(key=lambda h: h["score"], reverse=True)
            return self._reply("search", hits[: body["limit"]] + self.injected_hits)
        if path == f"{base}/points/delete":
            if "delete" not in self.fail_on:
                for pid in [pid for pid, p in self.points.items() if self._matches(p["payload"], body.get("filter"))]:
                    del self.points[pid]
            return self._reply("delete", {"status": "completed"})
        if path == f"{base}/points/count":
            count = sum(1 for p in self.points.values() if self._matches(p["payload"], body.get("filter")))
            return self._reply("count", {"count": count})
        return httpx.Response(404, json={"status": {"error": f"unknown path {path}"}})

    def count(self, **filters) -> int:
        return sum(1 for p in self.points.values() if all(str(p["payload"].get(k)) == str(v) for k, v in filters.items()))


class FakeOllama:
    """In-memory Ollama serving /api/embed, /api/show and /api/chat.

    The chat endpoint answers with the first context line of the prompt, or
    "I don't know." when the prompt carries no context.
    """

    def __init__(self):
        self.embed_requests: list[dict] = []
        self.chat_requests: list[dict] = []
        self.fail_embed = False
        self.fail_chat = False
        # overrides the computed embeddings, e.g. to return malformed data
        self.embed_override: list | None = None
        self.chat_reply: str | None = None

    @staticmethod
    def context_of(prompt: str) -> str:
        match = re.search(r"Context:\n(.*?)\n\nHistory:", prompt, re.S)
        return match.group(1).strip() if match else ""

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        body = json.loads(request.content) if request.content else {}

        if path in ("", "/"):
            return httpx.Response(200, text="Ollama is running")
        if path == "/api/show":
            return httpx.Response(200, json={"model_info": {"fake.embedding_length": VECTOR_SIZE}})
        if path == "/api/embed":
            self.embed_requests.append(body)
            if self.fail_embed:
                return httpx.Response(500, json={"error": "model not loaded"})
            if self.embed_override is not None:
                return httpx.Response(200, json={"embeddings": self.embed_override})
            return httpx.Response(200, json={"embeddings": [fake_embedding(t) for t in body["input"]]})
        if path == "/api/chat":
            self.chat_requests.append(body)
            if self.fail_chat:
                return httpx.Response(503, json={"error": "overloaded"})
            prompt = body["messages"][-1]["content"]
            if self.chat_reply is not None:
                answer = self.chat_reply
            else:
                context = self.context_of(prompt)
                answer = context.splitlines()[0] if context else "I don't know."
            return httpx.Response(200, json={"message": {"role": "assistant", "content": answer}, "done": True})
        return httpx.Response(404, json={"error": f"unknown path {path}"})

