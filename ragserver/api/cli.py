"""
Interactive CLI adapter for conversation search.

Architectural role:
- Terminal interface over the same `Container` the HTTP server uses.
- Displays backend status at startup for operator visibility.
- Delegates all work to `ConversationService`.

Request lifecycle (per line):
1. Read stdin.
2. Handle local commands (`exit`/`quit`, `/top <n>`, `/get <id>`).
3. Otherwise run a similarity search and print ranked hits.

Error handling strategy:
- Startup configuration failures print a message and exit with status 1.
- `ValidationError` / `NotFoundError` / upstream failures print a one-line
  message and keep the loop running.
- EOF and keyboard interrupts terminate the loop without traceback output.
"""

import sys

from ragserver.config import Settings
from ragserver.errors import NotFoundError, RAGError, UpstreamDependencyError, ValidationError
from ragserver.logging_setup import configure_logging


# =========================================================
# UTF-8 SAFE OUTPUT
# =========================================================

if hasattr(sys.stdout, "reconfigure"):
    try:
        sys.stdout.reconfigure(encoding="utf-8", errors="ignore")
    except Exception:
        pass


# =========================================================
# RENDERING
# =========================================================

def print_result(result):
    """Print ranked hits of a `SearchResult`."""
    if not result.results:
        print("No matching conversations.")
        return

    for rank, hit in enumerate(result.results, start=1):
        print(f"[{rank}] {hit.conversation_id}  score={hit.score:.4f}")
        for message in hit.messages:
            print(f"    {message.role}: {message.content}")
    meta = result.search_metadata
    print(f"\n{result.total_results} result(s) in {meta.search_time_ms}ms "
          f"({meta.embedding_model} / {meta.vector_db})")


def print_record(record):
    print(f"Conversation {record.id} (user: {record.user_id or '-'})")
    for message in record.messages():
        print(f"  {message.role}: {message.content}")
    if record.metadata:
        print(f"  metadata: {record.metadata}")


def handle_line(service, line: str, state: dict) -> bool:
    """
    Execute one CLI line against `service`.

    Returns:
        `False` when the loop should stop.
    """
    lowered = line.lower()
    words = lowered.split()
    command = words[0] if words else ""

    if lowered in ("exit", "quit"):
        return False

    if command == "/top":
        parts = line.split()
        if len(parts) != 2 or not parts[1].isdigit():
            print("Usage: /top <n>")
        else:
            state["limit"] = service.clamp_limit(int(parts[1]))
            print(f"Result count set to {state['limit']}")
        return True

    if command == "/get":
        parts = line.split(maxsplit=1)
        if len(parts) != 2:
            print("Usage: /get <conversation_id>")
            return True
        print_record(service.get(parts[1].strip()))
        return True

    print_result(service.search(line, limit=state.get("limit")))
    return True


# =========================================================
# MAIN
# =========================================================

def main():
    """Build the service and run the search loop until exit."""
    from ragserver.api.main import build_service

    settings = Settings.from_env()
    configure_logging("WARNING")

    try:
        container = build_service(settings)
    except RAGError as e:
        print(f"Startup error: {e}")
        sys.exit(1)

    service = container.service
    state = {"limit": service.default_limit}

    print("Conversation search started. (Type 'exit' to quit)")
    print("-" * 60)
    print(f"Embedding model: {container.embedder.model_name}")
    print(f"Vector backend: {container.index.name}")
    try:
        print(f"Indexed conversations: {container.index.count()}")
    except UpstreamDependencyError:
        print("Indexed conversations: unknown")
    print("Commands: /top <n>, /get <conversation_id>, exit")
    print("-" * 60)

    try:
        while True:
            try:
                line = input("Query: ").strip()
            except EOFError:
                print()
                break
            except KeyboardInterrupt:
                print("\nOperation cancelled by user.")
                break

            if not line:
                continue

            try:
                if not handle_line(service, line, state):
                    break
            except (ValidationError, NotFoundError) as e:
                print(f"{e}")
            except UpstreamDependencyError as e:
                print(f"Search failed: {e}")

            print("\n" + "-" * 60 + "\n")
    finally:
        print("Shutting down.")
        container.close()


if __name__ == "__main__":
    main()
