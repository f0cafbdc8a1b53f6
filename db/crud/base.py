from typing import Any, Dict, Generic, List, Optional, Type, TypeVar, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from pydantic import BaseModel
from db.core.database import Base

ModelType = TypeVar("ModelType", bound=Base)
CreateSchemaType = TypeVar("CreateSchemaType", bound=BaseModel)
UpdateSchemaType = TypeVar("UpdateSchemaType", bound=BaseModel)

class CRUDBase(Generic[ModelType, CreateSchemaType, UpdateSchemaType]):
    def __init__(self, model: Type[ModelType], unique_fields: Optional[List[str]] = None):
        self.model = model
        self.unique_fields = unique_fields or []

    # --- Async ---
    async def aget(self, db: AsyncSession, id: Any):
        return await db.get(self.model, id)

    async def acreate(self, db: AsyncSession, obj_in: CreateSchemaType) -> ModelType:
        if self.unique_fields:
            filter_kwargs = {field: getattr(obj_in, field) for field in self.unique_fields}
            res = await db.execute(select(self.model).filter_by(**filter_kwargs))
            existing = res.scalars().first()
            if existing:
                return existing

        obj = self.model(**obj_in.model_dump())
        db.add(obj)
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            if not self.unique_fields:
                raise
            filter_kwargs = {field: getattr(obj_in, field) for field in self.unique_fields}
            res = await db.execute(select(self.model).filter_by(**filter_kwargs))
            return res.scalars().first()
        await db.refresh(obj)
        return obj

    async def aupdate(self, db: AsyncSession, db_obj: ModelType, obj_in: Union[Dict[str, Any], BaseModel]):
        data = obj_in if isinstance(obj_in, dict) else obj_in.model_dump(exclude_unset=True)
        for k, v in data.items():
            setattr(db_obj, k, v)
        db.add(db_obj)
        await db.commit()
        await db.refresh(db_obj)
        return db_obj
