"""Payme error vocabulary — codes and the uz/ru/en messages Payme displays."""

from dataclasses import dataclass
from enum import IntEnum
from typing import Any


class PaymeErrorCode(IntEnum):
    INVALID_AMOUNT = -31001
    TRANSACTION_NOT_FOUND = -31003
    CANT_DO_OPERATION = -31008
    TRANSACTION_NOT_ALLOWED = -31050
    TRANSACTION_IN_PROCESS = -31099
    INVALID_AUTHORIZATION = -32504
    INVALID_REQUEST = -32600


class CancelReason(IntEnum):
    """Payme cancellation reasons used by this service."""

    CANCELED_DUE_TO_TIMEOUT = 4


@dataclass(frozen=True)
class PaymeError:
    """One entry of the error vocabulary."""

    code: int
    en: str
    ru: str
    uz: str
    data: str | None = None

    def as_dict(self, **extra: Any) -> dict[str, Any]:
        """Wire form: ``{"code", "message": {uz, ru, en}, "data"}`` plus ``extra``."""
        return {
            "code": int(self.code),
            "message": {"uz": self.uz, "ru": self.ru, "en": self.en},
            "data": self.data,
            **extra,
        }


INVALID_AMOUNT = PaymeError(
    code=PaymeErrorCode.INVALID_AMOUNT,
    en="Invalid amount",
    ru="Неверная сумма",
    uz="Noto'g'ri summa",
    data="amount",
)

TRANSACTION_NOT_FOUND = PaymeError(
    code=PaymeErrorCode.TRANSACTION_NOT_FOUND,
    en="Transaction not found",
    ru="Транзакция не найдена",
    uz="Tranzaksiya topilmadi",
    data="id",
)

CANT_DO_OPERATION = PaymeError(
    code=PaymeErrorCode.CANT_DO_OPERATION,
    en="Unable to perform operation",
    ru="Невозможно выполнить данную операцию",
    uz="Ushbu amalni bajarib bo'lmaydi",
)

PRODUCT_OR_USER_NOT_FOUND = PaymeError(
    code=PaymeErrorCode.TRANSACTION_NOT_ALLOWED,
    en="Product/user not found",
    ru="Товар/пользователь не найден",
    uz="Sizda mahsulot/foydalanuvchi topilmadi",
)

USER_NOT_FOUND = PaymeError(
    code=PaymeErrorCode.TRANSACTION_NOT_ALLOWED,
    en="User not found",
    ru="Пользователь не найден",
    uz="Foydalanuvchi topilmadi",
    data="user_id",
)

PRODUCT_NOT_FOUND = PaymeError(
    code=PaymeErrorCode.TRANSACTION_NOT_ALLOWED,
    en="Product not found",
    ru="Товар не найден",
    uz="Mahsulot topilmadi",
    data="plan_id",
)

TRANSACTION_IN_PROCESS = PaymeError(
    code=PaymeErrorCode.TRANSACTION_IN_PROCESS,
    en="Another transaction for this order is in process",
    ru="Другая транзакция по этому заказу в обработке",
    uz="Ushbu buyurtma bo'yicha boshqa tranzaksiya bajarilmoqda",
)

INVALID_AUTHORIZATION = PaymeError(
    code=PaymeErrorCode.INVALID_AUTHORIZATION,
    en="Invalid authorization",
    ru="Неверная авторизация",
    uz="Avtorizatsiya noto'g'ri",
)

INVALID_REQUEST = PaymeError(
    code=PaymeErrorCode.INVALID_REQUEST,
    en="Missing required fields or field types mismatch",
    ru="Отсутствуют обязательные поля или неверный тип полей",
    uz="Majburiy maydonlar yo'q yoki maydon turlari noto'g'ri",
)
