from aiogram import Dispatcher, F, types
from aiogram.fsm.context import FSMContext
from aiogram.fsm.state import State, StatesGroup
from loguru import logger
from sqlalchemy.exc import OperationalError

from database import SessionLocal
from handlers.menu import find_user
from keyboards.inline import cancel_kb, comment_kb, main_menu_kb, rating_kb
from models.evidence import EvidencePhase, PartyRole
from models.item import Item
from models.review import ItemReview
from services import review_gate
from services.errors import RentalNotFound, ValidationRejection
from services.evidence import party_role_of
from services.rentals import get_rental
from services.review_validator import ReviewKind
from services.reviews import item_review_totals

NO_FLOW_TEXTS = {
    "self_rental": "Аренда собственной вещи не оценивается.",
    "evidence_incomplete": "Сначала загрузите фото или видео возврата.",
    "not_return_phase": "Отзывы доступны только после возврата.",
}


class ReviewStates(StatesGroup):
    waiting_for_rental_id = State()
    waiting_for_rating = State()
    waiting_for_comment = State()
    waiting_for_item_id = State()


def step_prompt(step) -> str:
    if step.kind is ReviewKind.ITEM:
        return "Оцените вещь от 1 до 5:"
    if step.role is PartyRole.OWNER:
        return "Оцените владельца от 1 до 5:"
    return "Оцените арендатора от 1 до 5:"


def flow_party(decision) -> PartyRole:
    return PartyRole.RENTER if decision.kind is review_gate.FlowKind.RENTER_FLOW else PartyRole.OWNER


async def start_review_flow(message: types.Message, state: FSMContext, decision):
    await state.set_state(ReviewStates.waiting_for_rating)
    await state.update_data(
        rental_id=decision.rental_id,
        party_role=flow_party(decision).value,
        step_index=decision.next_index,
    )
    await message.answer(step_prompt(decision.steps[decision.next_index]), reply_markup=rating_kb())


# ⬇️ Старт отзыва из меню
async def review_start_handler(callback: types.CallbackQuery, state: FSMContext):
    await callback.message.edit_text("Введите ID аренды, чтобы оставить отзыв:", reply_markup=cancel_kb())
    await state.set_state(ReviewStates.waiting_for_rental_id)
    await callback.answer()


# ⬇️ Обработка ID аренды
async def process_rental_id(message: types.Message, state: FSMContext):
    if not message.text or not message.text.isdigit():
        await message.answer("ID должен быть числом. Попробуйте снова:", reply_markup=cancel_kb())
        return

    rental_id = int(message.text)
    db = SessionLocal()
    try:
        user = find_user(db, message.from_user.id)
        if not user:
            await message.answer("Вы не зарегистрированы. Используйте /start.")
            await state.clear()
            return
        try:
            rental = get_rental(db, rental_id)
        except RentalNotFound:
            await message.answer("Аренда не найдена. Попробуйте снова:", reply_markup=cancel_kb())
            return

        role = party_role_of(rental, user.id)
        decision = None
        if role is not None:
            decision = review_gate.evaluate(db, rental_id, EvidencePhase.RETURN, role)
    finally:
        db.close()

    if decision is None:
        await message.answer("Вы не участвуете в этой аренде.", reply_markup=main_menu_kb())
        await state.clear()
        return
    if not decision.is_flow:
        await message.answer(NO_FLOW_TEXTS.get(decision.reason, "Отзыв недоступен."), reply_markup=main_menu_kb())
        await state.clear()
        return
    if decision.finished:
        await message.answer("Вы уже оставили все отзывы по этой аренде. Спасибо!", reply_markup=main_menu_kb())
        await state.clear()
        return

    await start_review_flow(message, state, decision)


# ⬇️ Обработка рейтинга
async def process_rating(callback: types.CallbackQuery, state: FSMContext):
    rating = int(callback.data.split(":")[1])
    await state.update_data(rating=rating)
    await callback.message.edit_text("Напишите отзыв или нажмите 'Пропустить':", reply_markup=comment_kb())
    await state.set_state(ReviewStates.waiting_for_comment)
    await callback.answer()


async def submit_current_step(message: types.Message, state: FSMContext, comment):
    data = await state.get_data()
    rental_id = data["rental_id"]
    party = PartyRole(data["party_role"])

    db = SessionLocal()
    try:
        decision = review_gate.evaluate(db, rental_id, EvidencePhase.RETURN, party)
        result = review_gate.submit_step(db, decision, data["step_index"], data["rating"], comment)
        next_step = decision.steps[result.next_index] if not result.finished else None
    except ValidationRejection as e:
        await message.answer(f"❌ {e.message}", reply_markup=main_menu_kb())
        await state.clear()
        return
    except OperationalError as e:
        logger.error(f"Review submit failed for rental {rental_id}: {e}")
        await message.answer("⚠️ Не удалось сохранить отзыв. Попробуйте ещё раз.", reply_markup=comment_kb())
        return
    finally:
        db.close()

    if next_step is None:
        await message.answer("Спасибо за отзыв! 🙌", reply_markup=main_menu_kb())
        await state.clear()
        return

    await state.update_data(step_index=result.next_index)
    await state.set_state(ReviewStates.waiting_for_rating)
    await message.answer(step_prompt(next_step), reply_markup=rating_kb())


# ⬇️ Обработка комментария
async def process_comment(message: types.Message, state: FSMContext):
    await submit_current_step(message, state, (message.text or "").strip() or None)


# ⬇️ Пропуск комментария
async def skip_comment_callback(callback: types.CallbackQuery, state: FSMContext):
    await callback.answer()
    await submit_current_step(callback.message, state, None)


# ⬇️ Старт просмотра отзывов
async def show_reviews_start(callback: types.CallbackQuery, state: FSMContext):
    await callback.message.edit_text("Введите ID вещи для просмотра отзывов:", reply_markup=cancel_kb())
    await state.set_state(ReviewStates.waiting_for_item_id)
    await callback.answer()


# ⬇️ Обработка ID вещи для просмотра
async def process_item_id(message: types.Message, state: FSMContext):
    if not message.text or not message.text.isdigit():
        await message.answer("ID должен быть числом. Попробуйте снова:", reply_markup=cancel_kb())
        return

    item_id = int(message.text)
    db = SessionLocal()
    try:
        item = db.query(Item).filter(Item.id == item_id).first()
        if not item:
            await message.answer("Вещь не найдена. Попробуйте снова:", reply_markup=cancel_kb())
            return
        totals = item_review_totals(db, item_id)
        reviews = db.query(ItemReview).filter(ItemReview.item_id == item_id) \
            .order_by(ItemReview.created_at.desc()).limit(10).all()
        item_name = item.name
    finally:
        db.close()

    if not reviews:
        await message.answer(f"Для {item_name} ещё нет отзывов.", reply_markup=main_menu_kb())
        await state.clear()
        return

    msg = f"Отзывы для {item_name} (средний рейтинг: {totals.average_rating:.2f}, всего: {totals.total_reviews}):\n\n"
    for r in reviews:
        msg += f"👤 Пользователь {r.reviewer_id}\n⭐️ {r.rating}\n💬 {r.comment or '—'}\n\n"

    await message.answer(msg, reply_markup=main_menu_kb())
    await state.clear()


def register_reviews_handlers(dp: Dispatcher):
    dp.callback_query.register(review_start_handler, F.data == "cmd_review")
    dp.callback_query.register(show_reviews_start, F.data == "cmd_reviews")

    dp.message.register(process_rental_id, ReviewStates.waiting_for_rental_id)
    dp.callback_query.register(process_rating, ReviewStates.waiting_for_rating, F.data.startswith("rate:"))
    dp.message.register(process_comment, ReviewStates.waiting_for_comment)
    dp.callback_query.register(skip_comment_callback, ReviewStates.waiting_for_comment, F.data == "skip_comment")
    dp.message.register(process_item_id, ReviewStates.waiting_for_item_id)
