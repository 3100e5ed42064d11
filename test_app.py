import logging

from app import create_app


def _tagged(kind):
    return [h for h in logging.getLogger().handlers if getattr(h, '_sap_handler', None) == kind]


def test_repeated_app_creation_keeps_one_handler_per_kind(tmp_path):
    overrides = {
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'test.db'}",
        'UPLOAD_FOLDER': str(tmp_path / 'uploads'),
        'LOG_FILE': str(tmp_path / 'logs' / 'app.log'),
    }
    try:
        create_app('testing', overrides)
        create_app('testing', overrides)

        [file_handler] = _tagged('file')
        assert file_handler.baseFilename == str(tmp_path / 'logs' / 'app.log')
        assert len(_tagged('console')) == 1
    finally:
        for handler in _tagged('file'):
            logging.getLogger().removeHandler(handler)
            handler.close()
