from aiogram.types import InlineKeyboardMarkup, InlineKeyboardButton


def main_menu_kb():
    return InlineKeyboardMarkup(inline_keyboard=[
        [
            InlineKeyboardButton(text="📸 Фото/видео передачи", callback_data="cmd_evidence"),
            InlineKeyboardButton(text="📋 Мои аренды", callback_data="cmd_my_rentals"),
        ],
        [
            InlineKeyboardButton(text="📝 Оставить отзыв", callback_data="cmd_review"),
            InlineKeyboardButton(text="⭐️ Просмотреть отзывы", callback_data="cmd_reviews"),
        ],
    ])


def cancel_kb():
    return InlineKeyboardMarkup(inline_keyboard=[
        [InlineKeyboardButton(text="❌ Отмена", callback_data="cancel")],
    ])


def phase_kb():
    return InlineKeyboardMarkup(inline_keyboard=[
        [
            InlineKeyboardButton(text="🔑 Начало аренды", callback_data="phase:start"),
            InlineKeyboardButton(text="↩️ Возврат", callback_data="phase:return"),
        ],
        [InlineKeyboardButton(text="❌ Отмена", callback_data="cancel")],
    ])


def media_done_kb():
    return InlineKeyboardMarkup(inline_keyboard=[
        [InlineKeyboardButton(text="✅ Готово", callback_data="media_done")],
        [InlineKeyboardButton(text="❌ Отмена", callback_data="cancel")],
    ])


def rating_kb():
    return InlineKeyboardMarkup(inline_keyboard=[
        [InlineKeyboardButton(text=f"{star} ⭐️", callback_data=f"rate:{star}") for star in range(1, 6)],
        [InlineKeyboardButton(text="❌ Отмена", callback_data="cancel")],
    ])


def comment_kb():
    return InlineKeyboardMarkup(inline_keyboard=[
        [
            InlineKeyboardButton(text="Пропустить", callback_data="skip_comment"),
            InlineKeyboardButton(text="❌ Отмена", callback_data="cancel"),
        ],
    ])


def role_kb():
    return InlineKeyboardMarkup(inline_keyboard=[
        [
            InlineKeyboardButton(text="🏠 Как владелец", callback_data="role:owner"),
            InlineKeyboardButton(text="🙋 Как арендатор", callback_data="role:renter"),
        ],
        [InlineKeyboardButton(text="❌ Отмена", callback_data="cancel")],
    ])
