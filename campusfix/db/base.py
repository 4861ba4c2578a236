from sqlalchemy import Enum
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def StrEnumType(enum_class, length: int = 32) -> Enum:
    """
    Колонка-перечисление, хранящая значения (а не имена) членов enum в VARCHAR.
    Статусы дефектов хранятся как русские строки, например 'в работе'.
    """
    return Enum(
        enum_class,
        values_callable=lambda members: [m.value for m in members],
        native_enum=False,
        length=length,
        validate_strings=True,
    )
