from aiogram import Dispatcher, F, types
from aiogram.filters import Command, CommandStart
from aiogram.fsm.context import FSMContext
from loguru import logger
from sqlalchemy import or_

from database import SessionLocal
from keyboards.inline import main_menu_kb
from models.rental import Rental
from models.user import User


def get_or_register_user(db, telegram_user) -> User:
    user = db.query(User).filter(User.telegram_id == telegram_user.id).first()
    if user:
        return user

    user = User(telegram_id=telegram_user.id, name=telegram_user.full_name, registered=True)
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"Registered user {user.id} (telegram_id={telegram_user.id})")
    return user


def find_user(db, telegram_id: int):
    return db.query(User).filter(User.telegram_id == telegram_id, User.registered == True).first()


# /start: регистрация и главное меню
async def start_handler(message: types.Message, state: FSMContext):
    await state.clear()
    db = SessionLocal()
    try:
        user = get_or_register_user(db, message.from_user)
        user_id = user.id
    finally:
        db.close()

    await message.answer(
        f"Добро пожаловать! Ваш ID участника: {user_id}\nВыберите действие:",
        reply_markup=main_menu_kb()
    )


async def menu_handler(message: types.Message, state: FSMContext):
    await state.clear()
    await message.answer("Главное меню:", reply_markup=main_menu_kb())


# ⬇️ Список аренд пользователя со статусами
async def my_rentals_handler(callback: types.CallbackQuery):
    db = SessionLocal()
    try:
        user = find_user(db, callback.from_user.id)
        if not user:
            await callback.message.edit_text("Вы не зарегистрированы. Используйте /start.")
            await callback.answer()
            return

        rentals = db.query(Rental).filter(
            or_(Rental.owner_id == user.id, Rental.renter_id == user.id)
        ).order_by(Rental.id.desc()).all()

        if not rentals:
            text = "У вас пока нет аренд."
        else:
            lines = []
            for r in rentals:
                role = "владелец" if r.owner_id == user.id else "арендатор"
                lines.append(f"#{r.id} | {r.item.name if r.item else r.item_id} | {role} | {r.status}")
            text = "Ваши аренды:\n\n" + "\n".join(lines)
    finally:
        db.close()

    await callback.message.edit_text(text, reply_markup=main_menu_kb())
    await callback.answer()


# ⬇️ Отмена любого действия
async def cancel_callback(callback: types.CallbackQuery, state: FSMContext):
    await state.clear()
    await callback.message.edit_text("Действие отменено.", reply_markup=main_menu_kb())
    await callback.answer()


def register_menu_handlers(dp: Dispatcher):
    dp.message.register(start_handler, CommandStart())
    dp.message.register(menu_handler, Command("menu"))
    dp.callback_query.register(my_rentals_handler, F.data == "cmd_my_rentals")
    dp.callback_query.register(cancel_callback, F.data == "cancel")
