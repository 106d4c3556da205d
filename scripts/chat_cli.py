#!/usr/bin/env python3
"""Interactive chat CLI for trying the shop assistant against a running server."""

import sys
import uuid

import httpx
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

DEMO_TENANT = "org_demo"
DEMO_AGENT = "agent_demo"


class ChatCLI:
    """Interactive chat interface for the shop assistant."""

    def __init__(self, base_url: str = "http://localhost:8000", tenant_id: str = DEMO_TENANT, agent_id: str = DEMO_AGENT):
        self.base_url = base_url
        self.tenant_id = tenant_id
        self.agent_id = agent_id
        self.conversation_id = "conv_demo"
        self.current_product_id: str | None = None
        self.console = Console()
        self.client = httpx.Client(timeout=90.0)

    def start(self) -> None:
        """Start the interactive chat session."""
        self.console.print(
            Panel.fit(
                "[bold magenta]🛍️  Shop Agent - Interactive Chat[/bold magenta]\n"
                "Type your messages to chat with the store assistant.\n"
                "Commands: /help, /new, /view <product_id>, /quit",
                border_style="magenta",
            )
        )

        if not self._test_connection():
            self.console.print(f"[red]❌ Cannot connect to the service at {self.base_url}.[/red]")
            return

        self.console.print(f"[green]✅ Connected as tenant {self.tenant_id}, agent {self.agent_id}[/green]\n")

        try:
            while True:
                user_input = Prompt.ask("\n[bold cyan]You[/bold cyan]")
                command = user_input.strip().lower()

                if command in ["/quit", "/exit", "quit", "exit"]:
                    break
                elif command == "/help":
                    self._show_help()
                    continue
                elif command == "/new":
                    self.conversation_id = f"conv_{uuid.uuid4().hex[:12]}"
                    self.current_product_id = None
                    self.console.print(f"[yellow]🔄 New conversation {self.conversation_id}[/yellow]")
                    continue
                elif command.startswith("/view"):
                    parts = user_input.split(maxsplit=1)
                    self.current_product_id = parts[1].strip() if len(parts) > 1 else None
                    self.console.print(f"[yellow]👀 Viewing product: {self.current_product_id or 'none'}[/yellow]")
                    continue
                elif command == "":
                    continue

                response = self._send_message(user_input)
                if response:
                    self._display_response(response)

        except KeyboardInterrupt:
            pass
        finally:
            self.console.print("\n[yellow]👋 ¡Hasta pronto![/yellow]")
            self.client.close()

    def _test_connection(self) -> bool:
        try:
            response = self.client.get(f"{self.base_url}/health")
            return response.status_code == 200
        except httpx.HTTPError:
            return False

    def _send_message(self, message: str) -> dict | None:
        """Send message to the chat endpoint."""
        payload = {
            "message": message,
            "conversation_id": self.conversation_id,
            "tenant_id": self.tenant_id,
            "agent_id": self.agent_id,
        }
        if self.current_product_id:
            payload["current_product_id"] = self.current_product_id

        try:
            with self.console.status("[dim]💭 Pensando...[/dim]"):
                response = self.client.post(f"{self.base_url}/chat", json=payload)
        except httpx.HTTPError as e:
            self.console.print(f"[red]❌ Connection error: {e}[/red]")
            return None

        if response.status_code != 200:
            self.console.print(f"[red]❌ API Error: {response.status_code} - {response.text}[/red]")
            return None
        return response.json()

    def _display_response(self, response: dict) -> None:
        """Display the reply, its client actions and turn metadata."""
        self.console.print(
            Panel(
                Markdown(response.get("response") or "_(sin texto)_"),
                title="[bold green]🤖 Asistente[/bold green]",
                border_style="green",
                padding=(1, 2),
            )
        )

        actions = response.get("actions") or []
        if actions:
            table = Table(title="Actions", show_lines=False)
            table.add_column("Type", style="magenta")
            table.add_column("Summary")
            for action in actions:
                table.add_row(action["type"], self._summarize_action(action))
            self.console.print(table)

        metadata = response.get("metadata") or {}
        self.console.print(
            f"[dim]{metadata.get('model')} · {metadata.get('latency_ms')}ms · "
            f"iterations {metadata.get('iterations')} · tools {', '.join(metadata.get('tools_used') or []) or '-'}[/dim]"
        )

    @staticmethod
    def _summarize_action(action: dict) -> str:
        data = action.get("data") or {}
        if "product" in data:
            product = data["product"]
            return f"{product.get('name')} (${product.get('price')})"
        if "products" in data:
            return ", ".join(p.get("name", "?") for p in data["products"]) or "sin resultados"
        if action["type"] == "add_to_cart":
            return f"{data.get('product_id')} x{data.get('quantity')} {data.get('variant') or ''}".strip()
        if "paymentUrl" in data:
            return data["paymentUrl"] or "contra entrega"
        return ", ".join(sorted(data.keys()))

    def _show_help(self) -> None:
        help_text = """
[bold]Available Commands:[/bold]
• /help - Show this help message
• /new - Start a new conversation
• /view <product_id> - Pretend the customer is viewing a product (e.g. prod_tshirt)
• /quit or /exit - Exit the chat

[bold]Example Conversation:[/bold]
1. "Hola, ¿tienen camisetas?"
2. "Quiero la talla M en negro, 2 unidades"
3. "Soy Carlos, mi correo es carlos@example.com"
4. "Quiero pagar"

[bold]Demo data:[/bold]
• Products: prod_tshirt, prod_mug, prod_cap (agotado)
• Discount code: BIENVENIDA10
        """

        self.console.print(Panel(help_text.strip(), title="[cyan]❓ Help[/cyan]", border_style="cyan"))


def main():
    """Main entry point for the chat CLI."""
    base_url = sys.argv[1] if len(sys.argv) > 1 else "http://localhost:8000"

    chat = ChatCLI(base_url)
    chat.start()


if __name__ == "__main__":
    main()
