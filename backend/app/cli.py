import argparse
import asyncio

from app import seeds as app_seeds
from app.db.session import SessionLocal
from app.models.site_setting import OrderMode
from app.services import order_mode as order_mode_service


async def seed_demo() -> dict[str, int]:
    async with SessionLocal() as session:
        return await app_seeds.seed_demo(session)


async def set_order_mode(mode: OrderMode) -> OrderMode:
    async with SessionLocal() as session:
        return await order_mode_service.set_order_mode(session, mode)


async def show_order_mode() -> OrderMode:
    async with SessionLocal() as session:
        return await order_mode_service.get_order_mode(session)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Storefront maintenance utilities")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("seed-demo", help="Seed demo flavors, packs, promo codes and delivery zones")

    mode = subparsers.add_parser("set-order-mode", help="Switch between stock-based and preorder ordering")
    mode.add_argument("mode", choices=[m.value for m in OrderMode], help="New order mode")

    subparsers.add_parser("show-order-mode", help="Print the current order mode")
    return parser


def _run_cli_command(args: argparse.Namespace) -> bool:
    if args.command == "seed-demo":
        counts = asyncio.run(seed_demo())
        print(", ".join(f"{name}: {count}" for name, count in counts.items()))
        return True

    if args.command == "set-order-mode":
        mode = asyncio.run(set_order_mode(OrderMode(args.mode)))
        print(f"Order mode set to {mode.value}")
        return True

    if args.command == "show-order-mode":
        print(asyncio.run(show_order_mode()).value)
        return True

    return False


def main():
    parser = _build_parser()
    args = parser.parse_args()
    if not _run_cli_command(args):
        parser.print_help()


if __name__ == "__main__":
    main()
