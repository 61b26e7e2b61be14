"""
Stayline CLI

Command-line interface for Stayline administration.

Commands:
- init-db: Create database tables
- register-account: Register a WhatsApp Business number
- link-property: Create a property and link a guest phone to it
- unlink-property: Remove a guest phone's property link
- set-auto-respond: Switch auto-response on or off for a guest phone
- list-conversations: List conversations
- show-messages: Show the messages of a conversation
- draft-reply: Draft and gate a reply without sending it
- send-test: Send a test message
- activity: Show the newest pipeline activity events
"""

import asyncio
from typing import Optional

import typer
from rich import print as rprint
from rich.console import Console
from rich.markup import escape
from rich.table import Table

app = typer.Typer(
    name="stayline",
    help="Stayline WhatsApp auto-reply CLI",
)

console = Console()


@app.callback()
def main():
    from stayline_core.logging import setup_logging
    setup_logging()


def get_db():
    """Get database session."""
    from stayline_core.db import get_db as _get_db
    return next(_get_db())


def get_settings():
    from stayline_core.settings import get_settings as _get_settings
    return _get_settings()


def _get_account_or_exit(repo, phone_number_id: str):
    account = repo.find_account_by_phone_number_id(phone_number_id)
    if not account:
        rprint(f"[red]No active account for phone_number_id: {phone_number_id}[/red]")
        raise typer.Exit(1)
    return account


@app.command()
def init_db():
    """
    Create all database tables.
    """
    from stayline_core.db import create_all

    create_all()
    rprint("[green]Database tables created[/green]")


@app.command()
def register_account(
    user_id: str = typer.Argument(..., help="Owning user ID"),
    phone_number_id: str = typer.Argument(..., help="WhatsApp phone number ID (Meta)"),
    display_number: str = typer.Argument(..., help="Display phone number (e.g., +14155550123)"),
    waba_id: str = typer.Option(..., help="WhatsApp Business Account ID (Meta)"),
    access_token: Optional[str] = typer.Option(None, help="Access token (will be encrypted)"),
    business_name: Optional[str] = typer.Option(None, help="Business name"),
):
    """
    Register a WhatsApp Business number.

    The phone_number_id is used to route incoming webhooks to the account.
    """
    db = get_db()

    try:
        from stayline_whatsapp.persistence.repo import WhatsAppRepository
        from stayline_whatsapp.routing.account_resolver import encrypt_access_token

        repo = WhatsAppRepository(db)

        existing = repo.find_account_by_phone_number_id(phone_number_id)
        if existing:
            rprint(f"[yellow]Account already exists for phone_number_id: {phone_number_id}[/yellow]")
            rprint(f"  ID: {existing.id}")
            rprint(f"  User: {existing.user_id}")
            raise typer.Exit(1)

        stored_token = None
        if access_token:
            encryption_key = get_settings().WHATSAPP_ENCRYPTION_KEY
            if not encryption_key:
                rprint("[yellow]Warning: WHATSAPP_ENCRYPTION_KEY not set, storing token unencrypted[/yellow]")
            stored_token = encrypt_access_token(access_token, encryption_key)

        account = repo.create_account(
            user_id=user_id,
            waba_id=waba_id,
            phone_number_id=phone_number_id,
            display_phone_number=display_number,
            access_token=stored_token,
            business_name=business_name,
        )
        db.commit()

        rprint("[green]Account registered successfully![/green]")
        rprint(f"  ID: {account.id}")
        rprint(f"  Phone Number ID: {phone_number_id}")
        rprint(f"  Display Number: {display_number}")

    finally:
        db.close()


@app.command()
def link_property(
    phone_number_id: str = typer.Argument(..., help="Business phone number ID"),
    customer_phone: str = typer.Argument(..., help="Guest phone number (as WhatsApp sends it)"),
    name: str = typer.Option(..., help="Property name"),
    address: Optional[str] = typer.Option(None),
    description: Optional[str] = typer.Option(None),
    wifi_password: Optional[str] = typer.Option(None),
    checkin_time: Optional[str] = typer.Option(None),
    checkout_time: Optional[str] = typer.Option(None),
    house_rules: Optional[str] = typer.Option(None),
    emergency_contact: Optional[str] = typer.Option(None),
    custom_instructions: Optional[str] = typer.Option(None),
    property_id: Optional[int] = typer.Option(None, help="Link an existing property instead of creating one"),
    auto_respond: bool = typer.Option(True, help="Enable auto-response for this guest"),
):
    """
    Link a guest phone to a property.

    Any live link for the same guest is closed first.
    """
    db = get_db()

    try:
        from stayline_whatsapp.persistence.repo import WhatsAppRepository

        repo = WhatsAppRepository(db)
        account = _get_account_or_exit(repo, phone_number_id)

        if property_id is not None:
            prop = repo.get_property(property_id)
            if not prop:
                rprint(f"[red]Property not found: {property_id}[/red]")
                raise typer.Exit(1)
        else:
            details = {
                "address": address,
                "description": description,
                "wifi_password": wifi_password,
                "checkin_time": checkin_time,
                "checkout_time": checkout_time,
                "house_rules": house_rules,
                "emergency_contact": emergency_contact,
                "custom_instructions": custom_instructions,
            }
            prop = repo.create_property(
                account.user_id,
                name,
                **{key: value for key, value in details.items() if value is not None},
            )
            db.flush()

        link = repo.link_property(account, prop.id, customer_phone, auto_respond_enabled=auto_respond)
        db.commit()

        rprint("[green]Property linked[/green]")
        rprint(f"  Property: {prop.name} (ID {prop.id})")
        rprint(f"  Guest: {customer_phone}")
        rprint(f"  Link ID: {link.id}")
        rprint(f"  Auto-respond: {'on' if auto_respond else 'off'}")

    finally:
        db.close()


@app.command()
def unlink_property(
    phone_number_id: str = typer.Argument(..., help="Business phone number ID"),
    customer_phone: str = typer.Argument(..., help="Guest phone number"),
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation"),
):
    """
    Remove a guest phone's property link.

    The link is kept for history with unlinked_at set.
    """
    db = get_db()

    try:
        from stayline_whatsapp.persistence.repo import WhatsAppRepository

        repo = WhatsAppRepository(db)
        account = _get_account_or_exit(repo, phone_number_id)

        if not force:
            confirm = typer.confirm(f"Unlink {customer_phone} from its property?")
            if not confirm:
                rprint("[yellow]Cancelled[/yellow]")
                raise typer.Exit(0)

        closed = repo.unlink_property(account.id, customer_phone)
        db.commit()

        if closed:
            rprint(f"[green]Unlinked {closed} link(s)[/green]")
        else:
            rprint("[yellow]No live link found[/yellow]")

    finally:
        db.close()


@app.command()
def set_auto_respond(
    phone_number_id: str = typer.Argument(..., help="Business phone number ID"),
    customer_phone: str = typer.Argument(..., help="Guest phone number"),
    enabled: bool = typer.Option(True, "--on/--off", help="Switch auto-response on or off"),
):
    """
    Switch auto-response for a linked guest.
    """
    db = get_db()

    try:
        from stayline_whatsapp.persistence.repo import WhatsAppRepository

        repo = WhatsAppRepository(db)
        account = _get_account_or_exit(repo, phone_number_id)

        if not repo.set_auto_respond(account.id, customer_phone, enabled):
            rprint(f"[red]No live property link for {customer_phone}[/red]")
            raise typer.Exit(1)
        db.commit()

        rprint(f"[green]Auto-respond {'enabled' if enabled else 'disabled'} for {customer_phone}[/green]")

    finally:
        db.close()


@app.command()
def list_conversations(
    limit: int = typer.Option(20, help="Maximum number of conversations to show"),
    review_only: bool = typer.Option(False, "--review", help="Only conversations needing a human"),
):
    """
    List conversations, most recent first.
    """
    db = get_db()

    try:
        from stayline_whatsapp.persistence.repo import WhatsAppRepository

        repo = WhatsAppRepository(db)
        rows = repo.list_conversations(limit=limit)
        if review_only:
            rows = [(c, name) for c, name in rows if c.requires_manual_intervention]

        if not rows:
            rprint("[yellow]No conversations found[/yellow]")
            raise typer.Exit(0)

        table = Table(title="Conversations")
        table.add_column("ID", style="dim")
        table.add_column("Guest")
        table.add_column("Property")
        table.add_column("Unread", justify="right")
        table.add_column("Review")
        table.add_column("Last Message")

        for conversation, property_name in rows:
            review = (conversation.intervention_reason or "yes") if conversation.requires_manual_intervention else ""
            last = conversation.last_message_at.strftime("%Y-%m-%d %H:%M") if conversation.last_message_at else "-"
            table.add_row(
                str(conversation.id),
                conversation.customer_phone_number,
                property_name or "-",
                str(conversation.unread_count or 0),
                f"[red]{review}[/red]" if review else "",
                last,
            )

        console.print(table)

    finally:
        db.close()


@app.command()
def show_messages(
    conversation_id: int = typer.Argument(..., help="Conversation ID"),
):
    """
    Show the messages of a conversation in order.
    """
    db = get_db()

    try:
        from stayline_whatsapp.persistence.repo import WhatsAppRepository

        repo = WhatsAppRepository(db)
        if not repo.get_conversation(conversation_id):
            rprint(f"[red]Conversation not found: {conversation_id}[/red]")
            raise typer.Exit(1)

        table = Table(title=f"Conversation {conversation_id}")
        table.add_column("Time", style="dim")
        table.add_column("Dir")
        table.add_column("Text")
        table.add_column("Auto")
        table.add_column("Confidence", justify="right")
        table.add_column("Status")

        for message in repo.list_messages(conversation_id):
            confidence = f"{message.ai_confidence_score:.0%}" if message.ai_confidence_score is not None else ""
            table.add_row(
                message.timestamp_whatsapp.strftime("%Y-%m-%d %H:%M"),
                "<-" if message.direction == "inbound" else "->",
                escape(message.message_text or f"[{message.message_type}]"),
                "yes" if message.is_auto_response else "",
                confidence,
                message.status or ("[red]review[/red]" if message.needs_manual_review else ""),
            )

        console.print(table)

    finally:
        db.close()


@app.command()
def draft_reply(
    conversation_id: int = typer.Argument(..., help="Conversation ID"),
    message: str = typer.Argument(..., help="Guest message to answer"),
):
    """
    Draft and gate a reply for a conversation. Nothing is sent.
    """
    db = get_db()

    try:
        from stayline_whatsapp.llm.chat_completions import ChatCompletionsDrafter
        from stayline_whatsapp.persistence.repo import WhatsAppRepository
        from stayline_whatsapp.service.reply_generator import ReplyGenerator

        settings = get_settings()
        repo = WhatsAppRepository(db)
        conversation = repo.get_conversation(conversation_id)
        if not conversation:
            rprint(f"[red]Conversation not found: {conversation_id}[/red]")
            raise typer.Exit(1)

        property_info = repo.find_property_link(
            conversation.user_id,
            conversation.whatsapp_account_id,
            conversation.customer_phone_number,
        )
        drafter = ChatCompletionsDrafter.from_settings(settings)
        generator = ReplyGenerator(
            repo,
            drafter,
            history_limit=settings.HISTORY_LIMIT,
            timeout=settings.AI_DRAFT_TIMEOUT_SECONDS,
        )

        async def run():
            try:
                return await generator.generate(conversation_id, message, property_info)
            finally:
                await drafter.close()

        result = asyncio.run(run())

        if result.error:
            rprint(f"[red]Drafting failed: {result.error}[/red]")
            raise typer.Exit(1)

        would_send = result.should_send and result.confidence >= settings.AUTO_SEND_CONFIDENCE_THRESHOLD
        rprint(f"\n[cyan]Draft:[/cyan] {escape(result.response)}")
        rprint(f"  Confidence: {result.confidence:.0%}")
        rprint(f"  Reasoning: {result.reasoning}")
        rprint(f"  Would auto-send: {'[green]yes[/green]' if would_send else '[yellow]no[/yellow]'}")

    finally:
        db.close()


@app.command()
def send_test(
    phone_number_id: str = typer.Argument(..., help="Business phone number ID to send from"),
    to: str = typer.Argument(..., help="Recipient phone number (E.164 format)"),
    text: str = typer.Option("Hello from Stayline!", help="Message text"),
):
    """
    Send a test message.

    This sends a message directly via the provider for testing purposes.
    """
    db = get_db()

    try:
        from stayline_whatsapp.persistence.repo import WhatsAppRepository
        from stayline_whatsapp.providers.base import ProviderError
        from stayline_whatsapp.routing.account_resolver import AccountResolver
        from stayline_whatsapp.service.outbound_handler import get_provider

        settings = get_settings()
        repo = WhatsAppRepository(db)
        resolver = AccountResolver(repo, encryption_key=settings.WHATSAPP_ENCRYPTION_KEY)

        account = resolver.resolve(phone_number_id)
        if not account:
            rprint("[red]No active account found[/red]")
            raise typer.Exit(1)

        access_token = resolver.get_access_token(account)
        if not access_token:
            rprint("[red]No access token configured for this account[/red]")
            raise typer.Exit(1)

        async def send():
            provider = get_provider(settings.WHATSAPP_PROVIDER, api_version=settings.GRAPH_API_VERSION)
            try:
                return await provider.send_text(
                    phone_number_id=account.phone_number_id,
                    access_token=access_token,
                    to=to,
                    text=text,
                )
            finally:
                await provider.close()

        try:
            response = asyncio.run(send())
        except ProviderError as e:
            rprint("[red]Failed to send message[/red]")
            rprint(f"  Error: {e}")
            rprint(f"  Code: {e.code}")
            raise typer.Exit(1)

        rprint("[green]Message sent successfully![/green]")
        rprint(f"  Message ID: {response.message_id}")

    finally:
        db.close()


@app.command()
def activity(
    count: int = typer.Option(20, help="Number of events to show"),
):
    """
    Show the newest events of the Redis activity stream.

    Only populated when ACTIVITY_SINK=redis.
    """
    import json

    from stayline_core.redis import get_redis_client, read_stream_tail

    settings = get_settings()

    try:
        entries = read_stream_tail(get_redis_client(), settings.ACTIVITY_STREAM, count=count)
    except Exception as e:
        rprint(f"[red]Error reading activity stream: {e}[/red]")
        raise typer.Exit(1)

    if not entries:
        rprint(f"[yellow]No events in {settings.ACTIVITY_STREAM}[/yellow]")
        return

    table = Table(title=f"Activity ({settings.ACTIVITY_STREAM})")
    table.add_column("At", style="dim")
    table.add_column("Event", style="cyan")
    table.add_column("Fields")

    for _, data in entries:
        fields = json.loads(data.get("fields") or "{}")
        table.add_row(
            data.get("at", ""),
            data.get("event_type", ""),
            escape(", ".join(f"{k}={v}" for k, v in fields.items())),
        )

    console.print(table)


if __name__ == "__main__":
    app()
