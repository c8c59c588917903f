import sys
import types

import pytest

from billing_gateway import cli
from billing_gateway.services.signature import verify
from billing_gateway.services.stripe_client import BillingClient
from conftest import WEBHOOK_SECRET


def test_sign_prints_verifiable_header(capsys):
    payload = '{"id": "evt_1", "type": "invoice.paid"}'
    assert cli.main(["sign", WEBHOOK_SECRET, payload]) == 0
    header = capsys.readouterr().out.strip()
    assert header.startswith("t=")
    assert verify(payload.encode(), header, WEBHOOK_SECRET).id == "evt_1"


def test_sign_rejects_invalid_json(capsys):
    assert cli.main(["sign", WEBHOOK_SECRET, "{nope"]) == 1
    assert "valid JSON" in capsys.readouterr().err


def test_load_store_requires_module_attr():
    with pytest.raises(ValueError):
        cli.load_store("no_colon_here")


def test_load_store_rejects_non_store(monkeypatch):
    monkeypatch.setitem(
        sys.modules, "fake_app", types.SimpleNamespace(make_store=lambda: object())
    )
    with pytest.raises(TypeError):
        cli.load_store("fake_app:make_store")


def test_sync_plans(monkeypatch, store, stripe_sdk, settings, capsys):
    monkeypatch.setitem(
        sys.modules, "fake_app", types.SimpleNamespace(make_store=lambda: store)
    )
    monkeypatch.setattr(
        settings,
        "subscription_plans",
        [{"id": "pro", "name": "Pro", "amount": 1900}],
    )
    monkeypatch.setattr(
        BillingClient, "from_settings", classmethod(lambda cls, s: cls("sk", stripe_sdk))
    )
    stripe_sdk.products.create.return_value = {"id": "prod_1"}
    stripe_sdk.prices.create.return_value = {"id": "price_1"}

    assert cli.main(["sync-plans", "--store", "fake_app:make_store"]) == 0

    out = capsys.readouterr().out
    assert "Found 1 subscription plans" in out
    assert "created      pro" in out
    assert store.plans["pro"].stripe_price_id == "price_1"


def test_sync_plans_exit_code_on_failure(monkeypatch, store, settings, capsys):
    store.refuse_creation = True
    monkeypatch.setitem(
        sys.modules, "fake_app", types.SimpleNamespace(make_store=store)
    )
    monkeypatch.setattr(
        settings,
        "subscription_plans",
        [{"id": "pro", "name": "Pro", "amount": 1900}],
    )

    assert cli.main(["sync-plans", "--store", "fake_app:make_store"]) == 1
    assert "FAILED       pro" in capsys.readouterr().err
