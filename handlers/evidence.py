import time

from aiogram import Dispatcher, F, types
from aiogram.fsm.context import FSMContext
from aiogram.fsm.state import State, StatesGroup
from loguru import logger
from sqlalchemy.exc import OperationalError

from config import LOCATION_TTL_SECONDS, MIN_PHOTOS_PER_PHASE, MIN_VIDEOS_PER_PHASE
from database import SessionLocal
from handlers.menu import find_user
from keyboards.inline import cancel_kb, main_menu_kb, media_done_kb, phase_kb, role_kb
from models.evidence import EvidenceKind, EvidencePhase, PartyRole
from models.rental import RentalStatus
from services import review_gate
from services.errors import RentalNotFound, StatusConflict
from services.evidence import append_evidence, list_evidence, party_role_of
from services.rentals import get_rental
from services.status_engine import on_evidence_uploaded
from services.sufficiency import evidence_progress

STATUS_LABELS = {
    RentalStatus.CONFIRMED: "подтверждена, ждём фото начала аренды",
    RentalStatus.AWAITING_CHECKIN_OWNER: "ждём фото начала от владельца",
    RentalStatus.AWAITING_CHECKIN_RENTER: "ждём фото начала от арендатора",
    RentalStatus.ACTIVE: "аренда идёт",
    RentalStatus.AWAITING_CHECKOUT_OWNER: "ждём фото возврата от владельца",
    RentalStatus.AWAITING_CHECKOUT_RENTER: "ждём фото возврата от арендатора",
    RentalStatus.COMPLETED: "аренда завершена",
}

RETRY_TEXT = "⚠️ Не удалось сохранить. Попробуйте ещё раз через минуту."


class EvidenceStates(StatesGroup):
    waiting_for_rental_id = State()
    waiting_for_role = State()
    waiting_for_phase = State()
    waiting_for_media = State()


def status_label(status) -> str:
    try:
        return STATUS_LABELS[RentalStatus(status)]
    except ValueError:
        return str(status)


def progress_text(progress) -> str:
    if progress.satisfied:
        return f"Фото: {progress.photos}, видео: {progress.videos}. ✅ Материалов достаточно."
    return (
        f"Фото: {progress.photos}, видео: {progress.videos}. "
        f"Нужно ещё {progress.photos_missing} фото или {MIN_VIDEOS_PER_PHASE} видео."
    )


def fresh_location(data: dict):
    # геолокация прикрепляется только пока она свежая
    saved_at = data.get("location_at")
    if saved_at is None or time.time() - saved_at > LOCATION_TTL_SECONDS:
        return None, None
    return data.get("lat"), data.get("lng")


# ⬇️ Старт загрузки фото/видео
async def evidence_start_handler(callback: types.CallbackQuery, state: FSMContext):
    await callback.message.edit_text("Введите ID аренды:", reply_markup=cancel_kb())
    await state.set_state(EvidenceStates.waiting_for_rental_id)
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
        status = rental.status
        self_rental = rental.is_self_rental
    finally:
        db.close()

    if role is None:
        await message.answer("Вы не участвуете в этой аренде.", reply_markup=main_menu_kb())
        await state.clear()
        return

    if self_rental:
        # владелец и арендатор один человек: снимает за обе стороны по очереди
        await state.update_data(rental_id=rental_id, user_id=user.id)
        await message.answer(
            f"Аренда #{rental_id}: {status_label(status)}.\nВы и владелец, и арендатор. За какую сторону загружаете?",
            reply_markup=role_kb()
        )
        await state.set_state(EvidenceStates.waiting_for_role)
        return

    await state.update_data(rental_id=rental_id, party_role=role.value, user_id=user.id)
    await message.answer(
        f"Аренда #{rental_id}: {status_label(status)}.\nВыберите этап:",
        reply_markup=phase_kb()
    )
    await state.set_state(EvidenceStates.waiting_for_phase)


# ⬇️ Выбор стороны при аренде у самого себя
async def process_role(callback: types.CallbackQuery, state: FSMContext):
    role = PartyRole(callback.data.split(":")[1])
    await state.update_data(party_role=role.value)
    await callback.message.edit_text("Выберите этап:", reply_markup=phase_kb())
    await state.set_state(EvidenceStates.waiting_for_phase)
    await callback.answer()


# ⬇️ Выбор этапа
async def process_phase(callback: types.CallbackQuery, state: FSMContext):
    phase = EvidencePhase(callback.data.split(":")[1])
    await state.update_data(phase=phase.value)
    await callback.message.edit_text(
        f"Отправьте минимум {MIN_PHOTOS_PER_PHASE} фото или {MIN_VIDEOS_PER_PHASE} видео.\n"
        "Можно также отправить геолокацию. Когда закончите, нажмите «Готово».",
        reply_markup=media_done_kb()
    )
    await state.set_state(EvidenceStates.waiting_for_media)
    await callback.answer()


async def process_location(message: types.Message, state: FSMContext):
    await state.update_data(
        lat=message.location.latitude,
        lng=message.location.longitude,
        location_at=time.time(),
    )
    await message.answer("📍 Геолокация сохранена.", reply_markup=media_done_kb())


# ⬇️ Фото или видео
async def process_media(message: types.Message, state: FSMContext):
    data = await state.get_data()
    rental_id = data["rental_id"]
    phase = EvidencePhase(data["phase"])
    party = PartyRole(data["party_role"])

    if message.photo:
        kind, file_id = EvidenceKind.PHOTO, message.photo[-1].file_id
    else:
        kind, file_id = EvidenceKind.VIDEO, message.video.file_id
    lat, lng = fresh_location(data)

    db = SessionLocal()
    try:
        append_evidence(
            db, rental_id, phase, party, kind,
            storage_ref=file_id,
            captured_at=message.date.replace(tzinfo=None) if message.date else None,
            lat=lat, lng=lng,
            uploader_id=data.get("user_id"),
        )
        # пересчёт статуса после каждой записи
        status = on_evidence_uploaded(db, rental_id, phase, data.get("user_id"))
        progress = evidence_progress(list_evidence(db, rental_id, phase, party))
    except (OperationalError, StatusConflict) as e:
        logger.error(f"Evidence upload failed for rental {rental_id}: {e}")
        await message.answer(RETRY_TEXT, reply_markup=media_done_kb())
        return
    finally:
        db.close()

    await message.answer(
        f"{progress_text(progress)}\nСтатус: {status_label(status)}.",
        reply_markup=media_done_kb()
    )


# ⬇️ Готово
async def process_done(callback: types.CallbackQuery, state: FSMContext):
    data = await state.get_data()
    rental_id = data["rental_id"]
    phase = EvidencePhase(data["phase"])
    party = PartyRole(data["party_role"])

    db = SessionLocal()
    try:
        progress = evidence_progress(list_evidence(db, rental_id, phase, party))
        if not progress.satisfied:
            await callback.message.answer(progress_text(progress), reply_markup=media_done_kb())
            await callback.answer()
            return

        status = on_evidence_uploaded(db, rental_id, phase, data.get("user_id"))
        decision = None
        if phase is EvidencePhase.RETURN:
            decision = review_gate.on_return_phase_actor_finished(db, rental_id, party)
    except (OperationalError, StatusConflict) as e:
        logger.error(f"Status recompute failed for rental {rental_id}: {e}")
        await callback.message.answer(RETRY_TEXT, reply_markup=media_done_kb())
        await callback.answer()
        return
    finally:
        db.close()

    await callback.message.edit_text(f"✅ Материалы приняты. Статус: {status_label(status)}.")
    await callback.answer()

    if decision is not None and decision.is_flow and not decision.finished:
        from handlers.reviews import start_review_flow
        await start_review_flow(callback.message, state, decision)
        return

    await state.clear()
    await callback.message.answer("Главное меню:", reply_markup=main_menu_kb())


def register_evidence_handlers(dp: Dispatcher):
    dp.callback_query.register(evidence_start_handler, F.data == "cmd_evidence")
    dp.message.register(process_rental_id, EvidenceStates.waiting_for_rental_id)
    dp.callback_query.register(process_role, EvidenceStates.waiting_for_role, F.data.startswith("role:"))
    dp.callback_query.register(process_phase, EvidenceStates.waiting_for_phase, F.data.startswith("phase:"))
    dp.message.register(process_location, EvidenceStates.waiting_for_media, F.location)
    dp.message.register(process_media, EvidenceStates.waiting_for_media, F.photo | F.video)
    dp.callback_query.register(process_done, EvidenceStates.waiting_for_media, F.data == "media_done")
