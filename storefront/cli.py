"""
Command line for the storefront client.

Usage:
    storefront cart                                   # Show the current cart
    storefront cart --add 42 2 "Desk lamp" 100        # Add 2 x product 42, then show
    storefront cart --clear                           # Empty the cart
    storefront watch                                  # Follow admin notifications until Ctrl-C
    storefront watch --duration 30                    # ... for 30 seconds
    storefront --base-url https://shop.example.com cart
"""
import argparse
import asyncio
import sys
from dataclasses import replace
from typing import List, Optional

from storefront.api.client import StorefrontClient
from storefront.cart.store import CartState, CartStore
from storefront.core.config import StorefrontConfig, set_config
from storefront.notify import Notifier, Toast, VARIANT_DESTRUCTIVE, VARIANT_WARNING
from storefront.realtime.channel import RealtimeNotificationChannel
from storefront.realtime.counters import CounterSnapshot
from storefront.realtime.live_chat import LiveChatSession
from storefront.utils.logger import configure_logging


def format_toast(toast: Toast) -> str:
    marker = {VARIANT_DESTRUCTIVE: '!!', VARIANT_WARNING: ' !'}.get(toast.variant, ' *')
    if toast.description:
        return f"{marker} {toast.title}: {toast.description}"
    return f"{marker} {toast.title}"


def format_counters(snapshot: CounterSnapshot) -> str:
    return (
        f"messages={snapshot.unread_messages} "
        f"support={snapshot.pending_support_requests} "
        f"live_chats={snapshot.unassigned_live_chats}"
    )


def display_cart(state: CartState) -> None:
    """Print cart lines and totals."""
    print("\n" + "=" * 60)
    print(f"CART ({state.mode.value})")
    print("=" * 60)

    if not state.lines:
        print("  (Cart is empty)")
    for idx, line in enumerate(state.lines, 1):
        product = line.product
        price = product.effective_price
        print(f"  {idx}. [{line.line_id}] {product.name} x{line.quantity} @ ${price:,.2f} = ${line.line_total:,.2f}")

    print("-" * 40)
    print(f"Items: {state.total_items}")
    print(f"Total: ${state.total_price:,.2f}")
    print("=" * 60)


async def run_cart(config: StorefrontConfig, args: argparse.Namespace) -> None:
    notifier = Notifier()
    notifier.subscribe(lambda toast: print(format_toast(toast)))

    store = CartStore.from_config(config, notifier=notifier)
    try:
        await store.start()
        if args.clear:
            await store.clear_cart()
        if args.add:
            product_id, quantity, name, price = args.add
            await store.add_to_cart(int(product_id), int(quantity), name, float(price))
        display_cart(store.state)
    finally:
        await store.aclose()


async def run_watch(config: StorefrontConfig, args: argparse.Namespace) -> None:
    notifier = Notifier()
    notifier.subscribe(lambda toast: print(format_toast(toast)))

    async with StorefrontClient(config.base_url, timeout=config.request_timeout) as client:
        channel = RealtimeNotificationChannel.from_config(config, client=client)
        channel.counters.subscribe(lambda snapshot: print(f"   {format_counters(snapshot)}"))
        chat = LiveChatSession(channel, notifier=notifier)

        print(f"Watching {channel.url}")
        async with channel:
            if args.duration:
                await asyncio.sleep(args.duration)
            else:
                await asyncio.Event().wait()
        chat.detach()
        print(f"Final: {format_counters(channel.counters.snapshot())}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='storefront', description='Storefront cart and admin notifications')
    parser.add_argument('--config', type=str, default=None,
                        help='Path to a YAML config file (default: config/default.yaml)')
    parser.add_argument('--base-url', type=str, default=None,
                        help='Backend base URL, overrides the config file')
    parser.add_argument('--log-level', type=str, default=None,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        help='Log level for stderr output (default: LOG_LEVEL or INFO)')
    subparsers = parser.add_subparsers(dest='command', required=True)

    cart = subparsers.add_parser('cart', help='Show or change the cart')
    cart.add_argument('--add', nargs=4, metavar=('PRODUCT_ID', 'QTY', 'NAME', 'PRICE'),
                      help='Add a product before printing the cart')
    cart.add_argument('--clear', action='store_true',
                      help='Empty the cart before printing it')

    watch = subparsers.add_parser('watch', help='Follow admin notification counters and chat events')
    watch.add_argument('--duration', type=float, default=None,
                       help='Stop after this many seconds (default: run until interrupted)')
    return parser


def load_config(args: argparse.Namespace) -> StorefrontConfig:
    config = StorefrontConfig.from_yaml(args.config)
    if args.base_url:
        config = replace(config, base_url=args.base_url)
    set_config(config)
    return config


def main(argv: Optional[List[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command == 'cart' and args.add:
        try:
            int(args.add[0]), int(args.add[1]), float(args.add[3])
        except ValueError:
            parser.error("--add expects PRODUCT_ID QTY NAME PRICE with numeric id, quantity and price")
    configure_logging(args.log_level, sys.stderr)
    config = load_config(args)

    runner = run_cart if args.command == 'cart' else run_watch
    try:
        asyncio.run(runner(config, args))
    except KeyboardInterrupt:
        print("\nGoodbye!")


if __name__ == '__main__':
    main()
