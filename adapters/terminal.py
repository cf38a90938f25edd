"""Local terminal chatbot: type in the terminal, watch the streamed reply."""

from relay.commands import CommandRouter
from relay.models import IncomingMessage

QUIT_WORDS = ("quit", "exit", "q")


def run_terminal(router: CommandRouter, conversation_id: str = "local", input_fn=input) -> None:
    """Read lines until quit/EOF and route each one as a private-conversation message."""
    print(f"{router.bot_name}. Type 'quit' or 'exit' to stop.\n")
    while True:
        try:
            user_input = input_fn("You: ").strip()
        except (EOFError, KeyboardInterrupt):
            print("\nBye.")
            break
        if not user_input:
            continue
        if user_input.lower() in QUIT_WORDS:
            print("Bye.")
            break
        router.handle(IncomingMessage(conversation_id=conversation_id, text=user_input))
        print()
