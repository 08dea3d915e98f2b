"""User-facing messages, keyed by language"""

MESSAGES = {
    "en": {
        "word_required": "Word cannot be empty",
        "username_required": "Username cannot be empty",
        "session_required": "Session token is required",
        "words_required": "At least one word must be entered",
        "words_invalid": "At least one valid word must be entered",
        "payload_invalid": "Malformed request",
        "test_already_active": "A test is already active",
        "test_not_found": "Test not found",
        "no_active_test": "No active test",
        "no_finished_test": "No finished test found",
        "test_not_ready": "Test has already been started or ended",
        "test_not_active": "Only the active test can be finished",
        "test_not_cancellable": "Only ready or active tests can be cancelled",
        "already_submitted": "You have already submitted your answers",
        "session_not_found": "User session not found",
        "admin_required": "Authorization required",
        "invalid_credentials": "Invalid username or password",
        "storage_error": "Storage error, please try again",
        "emergency_partial": "Emergency reset completed with errors",
        "server_error": "Server error",
        "test_created": "Test created",
        "test_started": "Test started",
        "test_finished": "Test finished",
        "test_cancelled": "Test cancelled",
        "soft_reset_done": "All users were returned to the entry screen",
        "emergency_reset_done": "Emergency reset completed",
        "answers_saved": "Your answers have been saved",
        "login_ok": "Login successful",
        "logout_ok": "Logged out",
    },
    "tr": {
        "word_required": "Kelime boş olamaz",
        "username_required": "Kullanıcı adı boş olamaz",
        "session_required": "Oturum bilgisi gerekli",
        "words_required": "En az bir kelime girilmelidir",
        "words_invalid": "En az bir geçerli kelime girilmelidir",
        "payload_invalid": "Geçersiz istek",
        "test_already_active": "Zaten aktif bir test var",
        "test_not_found": "Test bulunamadı",
        "no_active_test": "Aktif test bulunamadı",
        "no_finished_test": "Tamamlanmış test bulunamadı",
        "test_not_ready": "Test zaten başlatılmış veya bitmiş",
        "test_not_active": "Yalnızca aktif test bitirilebilir",
        "test_not_cancellable": "Yalnızca hazır veya aktif testler iptal edilebilir",
        "already_submitted": "Zaten cevap gönderdiniz",
        "session_not_found": "Kullanıcı oturumu bulunamadı",
        "admin_required": "Yetkilendirme gerekli",
        "invalid_credentials": "Geçersiz kullanıcı adı veya şifre",
        "storage_error": "Veritabanı hatası, lütfen tekrar deneyin",
        "emergency_partial": "Acil sıfırlama hatalarla tamamlandı",
        "server_error": "Sunucu hatası",
        "test_created": "Test oluşturuldu",
        "test_started": "Test başlatıldı",
        "test_finished": "Test bitirildi",
        "test_cancelled": "Test iptal edildi",
        "soft_reset_done": "Tüm kullanıcılar giriş ekranına döndürüldü",
        "emergency_reset_done": "Acil sıfırlama tamamlandı",
        "answers_saved": "Cevaplarınız kaydedildi",
        "login_ok": "Giriş başarılı",
        "logout_ok": "Çıkış yapıldı",
    },
}

DEFAULT_LANGUAGE = "en"

def get_message(key: str, language: str = DEFAULT_LANGUAGE) -> str:
    """Look up a message, falling back to English and then to the key itself."""
    table = MESSAGES.get(language, MESSAGES[DEFAULT_LANGUAGE])
    return table.get(key) or MESSAGES[DEFAULT_LANGUAGE].get(key, key)
