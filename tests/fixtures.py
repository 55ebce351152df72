import json


class ScriptedBackend:
    """Chat backend that replays canned replies in small chunks."""

    def __init__(self, replies=None, chunk_size: int = 7):
        self.replies = list(replies or [])
        self.chunk_size = chunk_size
        self.calls = []

    async def stream(self, system_prompt, messages):
        self.calls.append((system_prompt, list(messages)))
        reply = self.replies.pop(0)
        for i in range(0, len(reply), self.chunk_size):
            yield reply[i:i + self.chunk_size]


def parse_sse(body: str):
    events = []
    for block in body.strip().split("\n\n"):
        fields = dict(line.split(": ", 1) for line in block.splitlines() if ": " in line)
        events.append((fields["event"], json.loads(fields["data"])))
    return events
