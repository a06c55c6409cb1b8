class Messages:
    """User-facing texts keyed by message id and language code."""

    DEFAULT_LANG = "UK"

    _TEXTS = {
        "UK": {
            "WELCOME": (
                "👋 Вітаємо в системі тестування!\n\n"
                "📝 Вам буде запропоновано випадкові питання з банку питань.\n"
                "✅ На кожне питання потрібно вибрати один правильний варіант відповіді.\n\n"
                "Будь ласка, введіть ваше Ім'я та Прізвище:"
            ),
            "NAME_TOO_SHORT": "⚠️ Будь ласка, введіть коректне ім'я (мінімум {min_length} символи):",
            "NAME_TOO_LONG": "⚠️ Ім'я занадто довге (максимум {max_length} символів):",
            "CHOOSE_VARIANT": "Дякуємо, {name}! Оберіть варіант тесту:",
            "UNKNOWN_VARIANT": "⚠️ Такого варіанту немає. Оберіть варіант зі списку:",
            "TEST_INTRO": (
                "✅ Дякуємо, {name}!\n\n"
                "🎯 Тест складається з {total} питань.\n"
                "⏱ Обмеження за часом немає.\n"
                "📌 Ви не можете повернутися до попередніх питань.\n\n"
                "Розпочинаємо тестування!"
            ),
            "QUESTION": "❓ Питання {number} із {total}:\n\n{text}",
            "RESUMING": "⚠️ Ви вже розпочали тестування.\n\nПродовжуйте відповідати на питання. Поточне питання: {number} із {total}",
            "ANSWER_CORRECT": "✅ Правильно!",
            "ANSWER_INCORRECT": "❌ Неправильно",
            "NOT_CURRENT_QUESTION": "⚠️ Це не поточне питання",
            "START_FIRST": "⚠️ Спочатку почніть тест через /start",
            "CHOICE_EXPIRED": "⚠️ Ця кнопка вже неактуальна",
            "INVALID_DATA": "❌ Некоректні дані",
            "USE_BUTTONS": "👆 Оберіть відповідь за допомогою кнопок під питанням.",
            "SEND_START": "Щоб розпочати тестування, надішліть /start",
            "ALREADY_COMPLETED": (
                "✅ Ви вже пройшли тестування!\n\n"
                "📊 Ваш результат: {score} із {total}\n"
                "📅 Дата проходження: {completed_at}\n\n"
                "Повторне проходження не передбачено."
            ),
            "TEST_FINISHED": (
                "🎉 Тестування завершено!\n\n"
                "📊 Ваш результат: {score} із {total} ({percent}%)\n\n"
                "{verdict}\n\n"
                "Дякуємо за проходження тесту!"
            ),
            "VERDICT_EXCELLENT": "🏆 Відмінний результат!",
            "VERDICT_GOOD": "👍 Добрий результат!",
            "VERDICT_POOR": "📚 Рекомендуємо повторити матеріал.",
            "GENERIC_ERROR": "❌ Виникла помилка. Спробуйте ще раз через /start",
            "ANSWER_ERROR": "❌ Виникла помилка. Натисніть відповідь ще раз",
            "BUSY": "⏳ Попередня дія ще обробляється, спробуйте ще раз",
            "NOTIFY_HEADER": (
                "📊 <b>Новий результат тестування</b>\n\n"
                "👤 <b>Студент:</b> {name}\n"
                "🆔 <b>Telegram ID:</b> <code>{identity}</code>\n"
                "🗂 <b>Варіант:</b> {variant}\n"
                "📅 <b>Дата:</b> {completed_at}\n\n"
                "✅ <b>Результат:</b> {score}/{total} ({percent}%)\n"
                "{verdict}"
            ),
            "NOTIFY_ANSWERS_HEADER": "📝 <b>Відповіді {start}-{end} з {total}:</b>\n",
            "NOTIFY_ANSWER_CORRECT": "\n<b>{number}.</b> {text}\n   ✅ {answer}\n",
            "NOTIFY_ANSWER_WRONG": "\n<b>{number}.</b> {text}\n   ❌ Відповідь: {answer}\n   ✅ Правильно: {correct}\n",
            "NO_ANSWER": "Не відповів",
            "EMAIL_SUBJECT": "📊 Результат тесту: {name} - {score}/{total} ({percent}%)",
            "STALLED_REPORT": "⏳ Незавершених тестувань без активності понад {hours} год: {count}",
            "EXPORT_TITLE": "Результат тестування: {name}",
            "EXPORT_SUMMARY": "Telegram ID: {identity} | Варіант: {variant} | Результат: {score}/{total} ({percent}%) | {completed_at}",
            "EXPORT_CHOSEN": "Відповідь: {answer}",
            "EXPORT_CORRECT": "Правильно: {answer}",
        },
        "EN": {
            "WELCOME": (
                "👋 Welcome to the testing system!\n\n"
                "📝 You will get random questions from the question bank.\n"
                "✅ Choose exactly one correct option for every question.\n\n"
                "Please enter your first and last name:"
            ),
            "NAME_TOO_SHORT": "⚠️ Please enter a valid name (at least {min_length} characters):",
            "NAME_TOO_LONG": "⚠️ The name is too long (at most {max_length} characters):",
            "CHOOSE_VARIANT": "Thank you, {name}! Choose a test variant:",
            "UNKNOWN_VARIANT": "⚠️ There is no such variant. Choose one from the list:",
            "TEST_INTRO": (
                "✅ Thank you, {name}!\n\n"
                "🎯 The test has {total} questions.\n"
                "⏱ There is no time limit.\n"
                "📌 You cannot return to previous questions.\n\n"
                "Let's begin!"
            ),
            "QUESTION": "❓ Question {number} of {total}:\n\n{text}",
            "RESUMING": "⚠️ You have already started the test.\n\nKeep answering. Current question: {number} of {total}",
            "ANSWER_CORRECT": "✅ Correct!",
            "ANSWER_INCORRECT": "❌ Incorrect",
            "NOT_CURRENT_QUESTION": "⚠️ This is not the current question",
            "START_FIRST": "⚠️ Start the test with /start first",
            "CHOICE_EXPIRED": "⚠️ This button is no longer active",
            "INVALID_DATA": "❌ Invalid data",
            "USE_BUTTONS": "👆 Use the buttons under the question to answer.",
            "SEND_START": "Send /start to begin the test",
            "ALREADY_COMPLETED": (
                "✅ You have already completed the test!\n\n"
                "📊 Your result: {score} of {total}\n"
                "📅 Completed on: {completed_at}\n\n"
                "The test can only be taken once."
            ),
            "TEST_FINISHED": (
                "🎉 The test is finished!\n\n"
                "📊 Your result: {score} of {total} ({percent}%)\n\n"
                "{verdict}\n\n"
                "Thank you for taking the test!"
            ),
            "VERDICT_EXCELLENT": "🏆 Excellent result!",
            "VERDICT_GOOD": "👍 Good result!",
            "VERDICT_POOR": "📚 We recommend reviewing the material.",
            "GENERIC_ERROR": "❌ Something went wrong. Please try again with /start",
            "ANSWER_ERROR": "❌ Something went wrong. Press the answer again",
            "BUSY": "⏳ Your previous action is still being processed, try again",
            "NOTIFY_HEADER": (
                "📊 <b>New test result</b>\n\n"
                "👤 <b>Student:</b> {name}\n"
                "🆔 <b>Telegram ID:</b> <code>{identity}</code>\n"
                "🗂 <b>Variant:</b> {variant}\n"
                "📅 <b>Date:</b> {completed_at}\n\n"
                "✅ <b>Result:</b> {score}/{total} ({percent}%)\n"
                "{verdict}"
            ),
            "NOTIFY_ANSWERS_HEADER": "📝 <b>Answers {start}-{end} of {total}:</b>\n",
            "NOTIFY_ANSWER_CORRECT": "\n<b>{number}.</b> {text}\n   ✅ {answer}\n",
            "NOTIFY_ANSWER_WRONG": "\n<b>{number}.</b> {text}\n   ❌ Answer: {answer}\n   ✅ Correct: {correct}\n",
            "NO_ANSWER": "No answer",
            "EMAIL_SUBJECT": "📊 Test result: {name} - {score}/{total} ({percent}%)",
            "STALLED_REPORT": "⏳ Unfinished tests idle for more than {hours} h: {count}",
            "EXPORT_TITLE": "Test result: {name}",
            "EXPORT_SUMMARY": "Telegram ID: {identity} | Variant: {variant} | Result: {score}/{total} ({percent}%) | {completed_at}",
            "EXPORT_CHOSEN": "Answer: {answer}",
            "EXPORT_CORRECT": "Correct: {answer}",
        },
    }

    @classmethod
    def get(cls, key: str, lang: str = DEFAULT_LANG) -> str:
        texts = cls._TEXTS.get((lang or cls.DEFAULT_LANG).upper(), cls._TEXTS[cls.DEFAULT_LANG])
        return texts.get(key) or cls._TEXTS["EN"].get(key, key)
