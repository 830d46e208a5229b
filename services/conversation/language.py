"""
=====================================================
Voice Scheduling Platform - Language Packs
=====================================================
Prompts, keyword sets and spoken-form helpers for each supported
language. The dialogue machine is identical for every language; only
the pack changes.
"""

from dataclasses import dataclass, field
from datetime import date, time
from enum import Enum
from typing import Dict, List, Tuple


class Language(str, Enum):
    EN = "en"
    ES = "es"


class Intent(Enum):
    """Caller intents, in classification order"""
    BOOKING = "booking"
    VOICEMAIL = "voicemail"
    PRICING = "pricing"
    TRANSFER = "transfer"


@dataclass(frozen=True)
class LanguagePack:
    """Everything language-specific the dialogue needs"""
    language: Language
    voice: str  # built-in fallback voice
    locale: str  # speech recognition / synthesis locale
    prompts: Dict[str, str]
    intent_keywords: Dict[Intent, Tuple[str, ...]]
    substitutions: Dict[str, str]
    choice_words: Dict[str, int]
    option_words: Tuple[str, ...]
    same_number_phrases: Tuple[str, ...]
    weekdays: Tuple[str, ...]  # Monday first
    months: Tuple[str, ...]  # January first
    month_aliases: Dict[str, int] = field(default_factory=dict)
    today_words: Tuple[str, ...] = ()
    tomorrow_words: Tuple[str, ...] = ()
    day_after_words: Tuple[str, ...] = ()
    hour_words: Dict[str, int] = field(default_factory=dict)
    minute_words: Dict[str, int] = field(default_factory=dict)  # what may follow an hour: "thirty", "y media"

    def say(self, key: str, **values) -> str:
        return self.prompts[key].format(**values)

    def speak_time(self, value: time) -> str:
        hour = value.hour % 12 or 12
        minutes = f"{value.minute:02d}"
        if self.language == Language.ES:
            if value.hour < 12:
                period = "de la mañana"
            elif value.hour < 19:
                period = "de la tarde"
            else:
                period = "de la noche"
            return f"{hour}:{minutes} {period}"
        suffix = "AM" if value.hour < 12 else "PM"
        return f"{hour}:{minutes} {suffix}"

    def speak_date(self, value: date) -> str:
        weekday = self.weekdays[value.weekday()]
        month = self.months[value.month - 1]
        if self.language == Language.ES:
            return f"{weekday} {value.day} de {month}"
        return f"{weekday.capitalize()}, {month.capitalize()} {value.day}"

    def join(self, items: List[str]) -> str:
        conjunction = "y" if self.language == Language.ES else "and"
        if len(items) <= 1:
            return "".join(items)
        return f"{', '.join(items[:-1])} {conjunction} {items[-1]}"


ENGLISH = LanguagePack(
    language=Language.EN,
    voice="Polly.Joanna",
    locale="en-US",
    prompts={
        "language_menu": "For English, press 1. Para español, oprima 2.",
        "greeting": (
            "Thank you for calling {business}. I can book an appointment for you "
            "or take a message. How can I help you today?"
        ),
        "ivr_intro": "Thank you for calling {business}.",
        "ivr_booking": "To book an appointment, press 1.",
        "ivr_department": "For {name}, press {digit}.",
        "ivr_voicemail": "To leave a message, press 9.",
        "no_input": "Sorry, I didn't hear anything.",
        "clarify": "Sorry, I didn't catch that. You can say book an appointment, or leave a message.",
        "pricing": (
            "Pricing depends on the service you need. I can book a consultation for you, "
            "or you can leave a message and the team will call you back. What would you like to do?"
        ),
        "ask_name": "Great, let's get you scheduled. Please say your full name.",
        "ask_phone": (
            "Thanks, {name}. What is the best phone number to reach you? "
            "You can say it, or enter it on your keypad followed by the pound key."
        ),
        "phone_incomplete": "Sorry, I didn't get the full number. Please say or enter your ten digit phone number.",
        "ask_date": "What day would you like to come in? You can say tomorrow, a day like Monday, or a date like March 20th.",
        "no_slots_retry": "I'm sorry, there are no openings on {date}. What other day works for you?",
        "no_slots_transfer": "I'm sorry, I couldn't find an opening. Let me connect you with someone who can help.",
        "offer_intro": "On {date}, I have these times available.",
        "offer_option": "For {time}, press {digit} or say {word}.",
        "offer_more": "For more times, press 4.",
        "offer_specialist": "To speak with a specialist, press 0.",
        "slot_taken": "Sorry, that time was just booked by another caller.",
        "booking_confirmed": (
            "You're all set, {name}. Your appointment is confirmed for {date} at {time}. "
            "Your confirmation code is {code}. Thank you for calling {business}. Goodbye!"
        ),
        "booking_pending": (
            "Thank you, {name}. Your appointment on {date} at {time} is reserved and will be confirmed "
            "once your deposit is received. Your confirmation code is {code}. Goodbye!"
        ),
        "booking_failed": "I'm sorry, I couldn't complete that booking. Let me connect you with someone who can help.",
        "voicemail_prompt": "Please leave your message after the beep. Press pound when you are finished.",
        "voicemail_unavailable": (
            "Thank you for calling {business}. Our assistant is temporarily unavailable. "
            "Please leave a message after the beep."
        ),
        "voicemail_thanks": "Thank you. Your message has been recorded and someone will get back to you. Goodbye!",
        "voicemail_placeholder": "New voicemail from {caller}. Listen to the recording for details.",
        "voicemail_fallback_summary": "Voicemail from {caller}: {text}",
        "transfer_department": "Connecting you to {name}. Please hold.",
        "transfer_specialist": "Please hold while I connect you with a specialist.",
        "transfer_failed": "Sorry, no one is available to take your call right now.",
        "department_unavailable": "Sorry, that department is not available right now.",
        "goodbye_no_input": "Sorry, I still couldn't understand you. Please call back any time. Goodbye!",
        "goodbye": "Thank you for calling. Goodbye!",
        "session_expired": "I'm sorry, we lost track of this call. Please call back and we'll be happy to help. Goodbye.",
        "tenant_not_found": "We're sorry, this number is not in service with us. Please try again later. Goodbye.",
        "technical_error": "We're sorry, we are having technical difficulties. Please call back in a few minutes. Goodbye.",
        "sms_confirmation": (
            "Hi {name}, your appointment with {business} is confirmed for {date} at {time}. "
            "Confirmation code: {code}. To cancel or reschedule, please call us."
        ),
        "sms_pending": (
            "Hi {name}, your appointment with {business} on {date} at {time} is reserved. "
            "A deposit is required to confirm it. Confirmation code: {code}."
        ),
    },
    intent_keywords={
        Intent.BOOKING: ("book", "booking", "appointment", "schedule", "reserve", "reservation", "demo",
                         "consultation"),
        Intent.VOICEMAIL: ("message", "voicemail", "leave", "record", "call me back", "callback"),
        Intent.PRICING: ("price", "pricing", "cost", "how much", "fee", "fees"),
        Intent.TRANSFER: ("speak to", "talk to", "speak with", "talk with", "human", "person",
                          "representative", "operator", "agent", "support", "someone"),
    },
    substitutions={
        "a point meant": "appointment",
        "appoint meant": "appointment",
        "voice mail": "voicemail",
        "call back": "callback",
    },
    choice_words={
        "one": 1, "first": 1,
        "two": 2, "second": 2,
        "three": 3, "third": 3,
        "four": 4, "more": 4, "next": 4, "other": 4, "others": 4,
        "zero": 0, "specialist": 0, "someone": 0, "person": 0, "operator": 0, "agent": 0,
    },
    option_words=("one", "two", "three"),
    hour_words={
        "one": 1, "two": 2, "three": 3, "four": 4, "five": 5, "six": 6,
        "seven": 7, "eight": 8, "nine": 9, "ten": 10, "eleven": 11, "twelve": 12,
    },
    minute_words={
        "o'clock": 0, "oclock": 0, "o clock": 0, "am": 0, "pm": 0, "a m": 0, "p m": 0,
        "fifteen": 15, "thirty": 30, "forty five": 45,
    },
    same_number_phrases=("this number", "same number", "calling from", "this phone", "number i'm calling"),
    weekdays=("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"),
    months=("january", "february", "march", "april", "may", "june", "july", "august",
            "september", "october", "november", "december"),
    month_aliases={"jan": 1, "feb": 2, "mar": 3, "apr": 4, "jun": 6, "jul": 7, "aug": 8,
                   "sep": 9, "sept": 9, "oct": 10, "nov": 11, "dec": 12},
    today_words=("today", "this afternoon", "this morning"),
    tomorrow_words=("tomorrow",),
    day_after_words=("day after tomorrow",),
)


SPANISH = LanguagePack(
    language=Language.ES,
    voice="Polly.Lupe",
    locale="es-MX",
    prompts={
        "language_menu": "For English, press 1. Para español, oprima 2.",
        "greeting": (
            "Gracias por llamar a {business}. Puedo agendar una cita o tomar un mensaje. "
            "¿En qué le puedo ayudar?"
        ),
        "ivr_intro": "Gracias por llamar a {business}.",
        "ivr_booking": "Para agendar una cita, oprima 1.",
        "ivr_department": "Para {name}, oprima {digit}.",
        "ivr_voicemail": "Para dejar un mensaje, oprima 9.",
        "no_input": "Disculpe, no escuché nada.",
        "clarify": "Disculpe, no le entendí. Puede decir agendar una cita, o dejar un mensaje.",
        "pricing": (
            "El precio depende del servicio que necesite. Puedo agendarle una consulta, "
            "o puede dejar un mensaje y el equipo le devolverá la llamada. ¿Qué prefiere?"
        ),
        "ask_name": "Perfecto, vamos a agendar su cita. Por favor diga su nombre completo.",
        "ask_phone": (
            "Gracias, {name}. ¿A qué número de teléfono le podemos contactar? "
            "Puede decirlo, o marcarlo en su teclado seguido de la tecla numeral."
        ),
        "phone_incomplete": "Disculpe, no obtuve el número completo. Por favor diga o marque su número de diez dígitos.",
        "ask_date": "¿Qué día le gustaría venir? Puede decir mañana, un día como lunes, o una fecha como 20 de marzo.",
        "no_slots_retry": "Lo siento, no hay horarios disponibles el {date}. ¿Qué otro día le funciona?",
        "no_slots_transfer": "Lo siento, no encontré horarios disponibles. Le comunico con alguien que le puede ayudar.",
        "offer_intro": "El {date} tengo estos horarios disponibles.",
        "offer_option": "Para las {time}, oprima {digit} o diga {word}.",
        "offer_more": "Para más horarios, oprima 4.",
        "offer_specialist": "Para hablar con un especialista, oprima 0.",
        "slot_taken": "Disculpe, ese horario acaba de ser reservado por otra persona.",
        "booking_confirmed": (
            "Listo, {name}. Su cita está confirmada para el {date} a las {time}. "
            "Su código de confirmación es {code}. Gracias por llamar a {business}. ¡Hasta luego!"
        ),
        "booking_pending": (
            "Gracias, {name}. Su cita del {date} a las {time} está reservada y se confirmará "
            "al recibir su depósito. Su código de confirmación es {code}. ¡Hasta luego!"
        ),
        "booking_failed": "Lo siento, no pude completar la reservación. Le comunico con alguien que le puede ayudar.",
        "voicemail_prompt": "Por favor deje su mensaje después del tono. Oprima numeral cuando termine.",
        "voicemail_unavailable": (
            "Gracias por llamar a {business}. Nuestro asistente no está disponible en este momento. "
            "Por favor deje un mensaje después del tono."
        ),
        "voicemail_thanks": "Gracias. Su mensaje fue grabado y le devolveremos la llamada. ¡Hasta luego!",
        "voicemail_placeholder": "Nuevo mensaje de voz de {caller}. Escuche la grabación para más detalles.",
        "voicemail_fallback_summary": "Mensaje de voz de {caller}: {text}",
        "transfer_department": "Le comunico con {name}. Por favor espere.",
        "transfer_specialist": "Por favor espere mientras le comunico con un especialista.",
        "transfer_failed": "Disculpe, nadie está disponible para atender su llamada en este momento.",
        "department_unavailable": "Disculpe, ese departamento no está disponible en este momento.",
        "goodbye_no_input": "Disculpe, sigo sin entenderle. Llámenos cuando guste. ¡Hasta luego!",
        "goodbye": "Gracias por su llamada. ¡Hasta luego!",
        "session_expired": "Lo siento, perdimos el hilo de esta llamada. Por favor llame de nuevo. Hasta luego.",
        "tenant_not_found": "Lo sentimos, este número no está en servicio. Intente más tarde. Hasta luego.",
        "technical_error": "Lo sentimos, tenemos problemas técnicos. Por favor llame en unos minutos. Hasta luego.",
        "sms_confirmation": (
            "Hola {name}, su cita con {business} está confirmada para el {date} a las {time}. "
            "Código: {code}. Para cancelar o cambiar su cita, llámenos."
        ),
        "sms_pending": (
            "Hola {name}, su cita con {business} el {date} a las {time} está reservada. "
            "Se requiere un depósito para confirmarla. Código: {code}."
        ),
    },
    intent_keywords={
        Intent.BOOKING: ("cita", "citas", "reservar", "agendar", "reservacion", "programar", "consulta", "turno",
                         "appointment"),
        Intent.VOICEMAIL: ("mensaje", "dejar", "recado", "buzon", "grabar"),
        Intent.PRICING: ("precio", "precios", "costo", "cuanto", "tarifa", "cobran"),
        Intent.TRANSFER: ("persona", "humano", "agente", "representante", "hablar con", "operador",
                          "alguien", "soporte", "especialista"),
    },
    substitutions={
        "sita": "cita",
        "sitas": "citas",
        "zita": "cita",
        "ajendar": "agendar",
        "asendar": "agendar",
        "reserbar": "reservar",
        "mensage": "mensaje",
    },
    choice_words={
        "uno": 1, "una": 1, "primera": 1, "primero": 1,
        "dos": 2, "segunda": 2, "segundo": 2,
        "tres": 3, "tercera": 3, "tercero": 3,
        "cuatro": 4, "mas": 4, "otras": 4, "otros": 4, "siguientes": 4,
        "cero": 0, "especialista": 0, "alguien": 0, "persona": 0, "agente": 0,
    },
    option_words=("uno", "dos", "tres"),
    hour_words={
        "una": 1, "uno": 1, "dos": 2, "tres": 3, "cuatro": 4, "cinco": 5, "seis": 6,
        "siete": 7, "ocho": 8, "nueve": 9, "diez": 10, "once": 11, "doce": 12,
    },
    minute_words={
        "en punto": 0, "y cuarto": 15, "y quince": 15, "quince": 15,
        "y media": 30, "y treinta": 30, "treinta": 30, "cuarenta y cinco": 45,
    },
    same_number_phrases=("este numero", "mismo numero", "este telefono", "del que llamo", "desde el que llamo"),
    weekdays=("lunes", "martes", "miércoles", "jueves", "viernes", "sábado", "domingo"),
    months=("enero", "febrero", "marzo", "abril", "mayo", "junio", "julio", "agosto",
            "septiembre", "octubre", "noviembre", "diciembre"),
    month_aliases={"setiembre": 9},
    today_words=("hoy",),
    tomorrow_words=("manana",),
    day_after_words=("pasado manana",),
)


LANGUAGE_PACKS: Dict[Language, LanguagePack] = {
    Language.EN: ENGLISH,
    Language.ES: SPANISH,
}


def get_language_pack(language) -> LanguagePack:
    """Pack for a Language or language code, English when unknown"""
    try:
        return LANGUAGE_PACKS[Language(language)]
    except ValueError:
        return ENGLISH
