"""Deny list of throwaway and placeholder e-mail domains."""
from __future__ import annotations

from typing import Final

DISPOSABLE_EMAIL_DOMAINS: Final[frozenset[str]] = frozenset(
    {
        "10minutemail.com",
        "tempmail.org",
        "guerrillamail.com",
        "mailinator.com",
        "temp-mail.org",
        "throwaway.email",
        "getnada.com",
        "maildrop.cc",
        "sharklasers.com",
        "grr.la",
        "guerrillamailblock.com",
        "pokemail.net",
        "spam4.me",
        "bccto.me",
        "chacuo.net",
        "dispostable.com",
        "mailnesia.com",
        "mailcatch.com",
        "inboxalias.com",
        "mailmetrash.com",
        "trashmail.net",
        "trashmail.com",
        "mytrashmail.com",
        "spamgourmet.com",
        "spam.la",
        "binkmail.com",
        "bobmail.info",
        "chammy.info",
        "devnullmail.com",
        "letthemeatspam.com",
        "mailin8r.com",
        "mailinator2.com",
        "notmailinator.com",
        "reallymymail.com",
        "reconmail.com",
        "safetymail.info",
        "sogetthis.com",
        "spamhereplease.com",
        "superrito.com",
        "thisisnotmyrealemail.com",
        "tradermail.info",
        "veryrealemail.com",
        "wegwerfmail.de",
        "wegwerfmail.net",
        "wegwerfmail.org",
        "wegwerpmailadres.nl",
        "wetrainbayarea.com",
        "wetrainbayarea.org",
        "wh4f.org",
        "whyspam.me",
        "willselfdestruct.com",
        "wuzup.net",
        "wuzupmail.net",
        "yeah.net",
        "yopmail.com",
        "yopmail.net",
        "yopmail.org",
        "ypmail.webarnak.fr.eu.org",
        "cool.fr.nf",
        "jetable.fr.nf",
        "nospam.ze.tc",
        "nomail.xl.cx",
        "mega.zik.dj",
        "speed.1s.fr",
        "courriel.fr.nf",
        "moncourrier.fr.nf",
        "monemail.fr.nf",
        "monmail.fr.nf",
        "test.com",
        "example.com",
        "example.org",
        "example.net",
        "invalid.com",
        "fake.com",
        "dummy.com",
    }
)


def email_domain(email: str) -> str:
    _, separator, domain = email.strip().lower().rpartition("@")
    return domain if separator else ""


def is_disposable_email(email: str) -> bool:
    """``True`` for deny-listed domains and any subdomain of them.

    Addresses without a domain part are treated as disposable.
    """

    domain = email_domain(email)
    if not domain:
        return True
    labels = domain.split(".")
    return any(".".join(labels[index:]) in DISPOSABLE_EMAIL_DOMAINS for index in range(len(labels)))


__all__ = ["DISPOSABLE_EMAIL_DOMAINS", "email_domain", "is_disposable_email"]
