from __future__ import annotations

import argparse

import pytest

from app import cli
from app.models.site_setting import OrderMode


def test_parser_accepts_known_commands() -> None:
    parser = cli._build_parser()
    assert parser.parse_args(["seed-demo"]).command == "seed-demo"
    args = parser.parse_args(["set-order-mode", "preorder"])
    assert (args.command, args.mode) == ("set-order-mode", "preorder")
    with pytest.raises(SystemExit):
        parser.parse_args(["set-order-mode", "whenever"])


def test_seed_demo_command(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    async def fake_seed() -> dict[str, int]:
        return {"flavors": 4, "products": 3, "promo_codes": 5, "delivery_zones": 3}

    monkeypatch.setattr(cli, "seed_demo", fake_seed)
    assert cli._run_cli_command(argparse.Namespace(command="seed-demo")) is True
    assert capsys.readouterr().out.strip() == "flavors: 4, products: 3, promo_codes: 5, delivery_zones: 3"


def test_order_mode_commands(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    seen: list[OrderMode] = []

    async def fake_set(mode: OrderMode) -> OrderMode:
        seen.append(mode)
        return mode

    async def fake_show() -> OrderMode:
        return OrderMode.preorder

    monkeypatch.setattr(cli, "set_order_mode", fake_set)
    monkeypatch.setattr(cli, "show_order_mode", fake_show)

    assert cli._run_cli_command(argparse.Namespace(command="set-order-mode", mode="preorder")) is True
    assert seen == [OrderMode.preorder]
    assert "Order mode set to preorder" in capsys.readouterr().out

    assert cli._run_cli_command(argparse.Namespace(command="show-order-mode")) is True
    assert capsys.readouterr().out.strip() == "preorder"


def test_unknown_command_prints_help(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    monkeypatch.setattr("sys.argv", ["cli"])
    cli.main()
    assert "usage" in capsys.readouterr().out.lower()
