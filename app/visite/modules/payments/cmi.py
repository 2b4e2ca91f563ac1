"""
CMI (Centre Monétique Interbancaire) hosted 3-D Secure payment page.

The shop posts a signed form to the gateway; the gateway posts the outcome
back to the callback URL with a signature computed the same way.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
from dataclasses import dataclass
from decimal import Decimal

SUCCESS_RESPONSES = ("Approved", "00", "0")
SUCCESS_MD_STATUSES = ("1", "2", "3", "4")
SUCCESS_MESSAGE = "Paiement effectué avec succès"
UNKNOWN_ERROR_MESSAGE = "Erreur de paiement inconnue"

ERROR_MESSAGES = {
    "01": "Carte refusée par la banque",
    "02": "Contactez votre banque",
    "03": "Marchand invalide",
    "04": "Confisquer la carte",
    "05": "Transaction refusée",
    "06": "Erreur générale",
    "07": "Confisquer la carte (conditions spéciales)",
    "12": "Transaction invalide",
    "13": "Montant invalide",
    "14": "Numéro de carte invalide",
    "15": "Banque émettrice inconnue",
    "17": "Annulation par le client",
    "19": "Répéter la transaction",
    "20": "Réponse invalide",
    "21": "Aucune action entreprise",
    "25": "Enregistrement de transaction introuvable",
    "28": "Fichier temporairement indisponible",
    "30": "Erreur de format de message",
    "41": "Carte perdue - confisquer",
    "43": "Carte volée - confisquer",
    "51": "Fonds insuffisants",
    "54": "Carte expirée",
    "57": "Transaction non autorisée pour ce porteur",
    "58": "Transaction non autorisée pour ce terminal",
    "61": "Limite de montant dépassée",
    "62": "Carte restreinte",
    "65": "Limite de fréquence dépassée",
    "75": "Tentatives de saisie du PIN dépassées",
    "76": "Compte déjà lettré",
    "77": "Référence du porteur incorrecte",
    "78": "Compte bloqué (premier usage)",
    "81": "Problème cryptographique",
    "82": "CVV incorrect",
    "83": "PIN incorrect",
    "84": "Echec de l'authentification",
    "85": "Pas de raison de refus",
    "91": "Système émetteur indisponible",
    "92": "Type de transaction invalide",
    "96": "Dysfonctionnement système",
    "99": "Erreur de configuration",
}


@dataclass(frozen=True)
class CmiConfig:
    merchant_id: str
    access_key: str
    secret_key: str
    gateway_url: str
    ok_url: str
    fail_url: str
    shop_url: str
    encoding: str = "UTF-8"
    currency: str = "504"  # ISO 4217 numeric code for MAD

    @property
    def configured(self) -> bool:
        return bool(self.merchant_id and self.access_key and self.secret_key and self.gateway_url)


def cmi_config_from(config: dict) -> CmiConfig:
    return CmiConfig(
        merchant_id=(config.get("CMI_MERCHANT_ID") or "").strip(),
        access_key=(config.get("CMI_ACCESS_KEY") or "").strip(),
        secret_key=config.get("CMI_SECRET_KEY") or "",
        gateway_url=(config.get("CMI_GATEWAY_URL") or "").strip(),
        ok_url=(config.get("CMI_OK_URL") or "").strip(),
        fail_url=(config.get("CMI_FAIL_URL") or "").strip(),
        shop_url=(config.get("CMI_SHOP_URL") or "").strip(),
    )


def generate_hash(params: dict[str, str], secret_key: str) -> str:
    """Base64 SHA-512 over ``k1=v1|k2=v2|...|secret`` with keys sorted."""
    plain = "|".join(f"{k}={params[k]}" for k in sorted(params)) + f"|{secret_key}"
    return base64.b64encode(hashlib.sha512(plain.encode("utf-8")).digest()).decode("ascii")


def amount_in_cents(amount: Decimal | float) -> str:
    return str(int((Decimal(str(amount)) * 100).quantize(Decimal("1"))))


def build_payment_request(
    cfg: CmiConfig,
    *,
    order_id: str,
    amount: Decimal | float,
    email: str,
    name: str = "",
    phone: str = "",
    lang: str = "fr",
    description: str | None = None,
) -> dict[str, str]:
    params = {
        "clientid": cfg.merchant_id,
        "amount": amount_in_cents(amount),
        "oid": order_id,
        "okUrl": cfg.ok_url,
        "failUrl": cfg.fail_url,
        "shopurl": cfg.shop_url,
        "currency": cfg.currency,
        "lang": lang,
        "encoding": cfg.encoding,
        "email": email,
        "BillToName": name or "",
        "tel": phone or "",
        "storetype": "3D_PAY_HOSTING",
        "hashAlgorithm": "ver3",
        "refreshtime": "5",
        "AutoRedirect": "1",
    }
    if description:
        params["trantype"] = "Auth"
        params["instalment"] = ""
        params["description"] = description
    params["HASH"] = generate_hash(params, cfg.secret_key)
    return params


def verify_callback(params: dict[str, str], secret_key: str) -> bool:
    data = dict(params)
    received = data.pop("HASH", None) or data.pop("hash", None) or ""
    data.pop("hash", None)
    expected = generate_hash(data, secret_key)
    return bool(received) and hmac.compare_digest(received, expected)


@dataclass(frozen=True)
class CmiCallback:
    order_id: str
    amount: str
    currency: str
    response: str
    response_message: str
    transaction_id: str
    auth_code: str
    proc_return_code: str
    md_status: str

    @property
    def is_success(self) -> bool:
        return self.response in SUCCESS_RESPONSES and self.md_status in SUCCESS_MD_STATUSES

    @property
    def status_message(self) -> str:
        if self.is_success:
            return SUCCESS_MESSAGE
        return ERROR_MESSAGES.get(self.response) or self.response_message or UNKNOWN_ERROR_MESSAGE


def parse_callback(params: dict[str, str]) -> CmiCallback:
    return CmiCallback(
        order_id=params.get("oid") or params.get("orderId") or "",
        amount=params.get("amount") or "",
        currency=params.get("currency") or "",
        response=params.get("Response") or "",
        response_message=params.get("mdErrorMsg") or params.get("ErrMsg") or "",
        transaction_id=params.get("TransId") or params.get("xid") or "",
        auth_code=params.get("AuthCode") or "",
        proc_return_code=params.get("ProcReturnCode") or "",
        md_status=params.get("mdStatus") or "",
    )
