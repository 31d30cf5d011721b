"""User-facing messages for credential store error codes.

The service passes provider codes through untouched; this is the single
place that turns them into text a person should read.
"""

GENERIC_ERROR = "Toiminto epäonnistui. Yritä myöhemmin uudelleen."
GENERIC_ACTION_ERROR = "Toiminnon käsittelyssä tapahtui virhe"
PASSWORD_CHANGE_FAILED = "Salasanan vaihtaminen epäonnistui"
PASSWORD_RESET_FAILED = "Salasanan nollausviestin lähettäminen epäonnistui."
INVALID_ACTION_CODE = "Virheellinen toimintokoodi"
UNKNOWN_ACTION = "Tuntematon toiminto"
LINK_NO_LONGER_VALID = "Linkki ei ole enää voimassa"
NOT_LOGGED_IN = "Kirjaudu sisään jatkaaksesi."
TOO_MANY_REQUESTS = "Liian monta pyyntöä. Yritä hetken kuluttua uudelleen."

_PROVIDER_MESSAGES = {
    "EMAIL_NOT_FOUND": "Virheellinen sähköposti tai salasana",
    "INVALID_PASSWORD": "Virheellinen sähköposti tai salasana",
    "INVALID_LOGIN_CREDENTIALS": "Virheelliset tunnistetiedot. Tarkista sähköposti ja salasana.",
    "TOO_MANY_ATTEMPTS_TRY_LATER": "Liian monta epäonnistunutta yritystä. Yritä myöhemmin uudelleen.",
    "INVALID_EMAIL": "Virheellinen sähköpostiosoite.",
    "USER_DISABLED": "Tämä käyttäjätili on poistettu käytöstä.",
    "EMAIL_EXISTS": "Sähköpostiosoite on jo käytössä.",
    "WEAK_PASSWORD": "Salasanan on oltava vähintään 6 merkkiä pitkä.",
    "EXPIRED_OOB_CODE": "Linkki on vanhentunut.",
    "INVALID_OOB_CODE": "Linkki on virheellinen tai jo käytetty.",
    "CREDENTIAL_TOO_OLD_LOGIN_AGAIN": "Kirjaudu uudelleen sisään ja yritä sitten uudelleen.",
}


def provider_error_message(code: str) -> str:
    """Localized message for a provider code, generic for unknown codes."""
    return _PROVIDER_MESSAGES.get(code, GENERIC_ERROR)
