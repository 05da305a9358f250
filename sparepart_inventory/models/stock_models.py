from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from db.base import Base


class Location(Base):
    __tablename__ = "Locations"
    __table_args__ = (UniqueConstraint("Region", "Regency", "Cluster", name="uq_location_tuple"),)

    LocationID = Column(Integer, primary_key=True)
    Region = Column(String(20), nullable=False)
    Regency = Column(String(255), nullable=False)
    Cluster = Column(String(255), nullable=False)
    CreatedDate = Column(DateTime, server_default=func.now())
    UpdatedDate = Column(DateTime, server_default=func.now())

    Stocks = relationship("Stock", back_populates="Location")
    ContactPersons = relationship("ContactPerson", back_populates="Location")


class SparepartMaster(Base):
    __tablename__ = "SparepartMasters"
    __table_args__ = (UniqueConstraint("Name", "ItemType", name="uq_sparepart_master_name"),)

    SparepartID = Column(Integer, primary_key=True)
    Name = Column(String(255), nullable=False)
    ItemType = Column(String(20), nullable=False, default="SPAREPART")
    CreatedDate = Column(DateTime, server_default=func.now())
    UpdatedDate = Column(DateTime, server_default=func.now())

    Stocks = relationship("Stock", back_populates="Sparepart")


class Stock(Base):
    __tablename__ = "Stocks"

    StockID = Column(Integer, primary_key=True)
    LocationID = Column(Integer, ForeignKey("Locations.LocationID"), nullable=False)
    SparepartID = Column(Integer, ForeignKey("SparepartMasters.SparepartID"), nullable=False)
    StockType = Column(String(20))
    Quantity = Column(Integer, nullable=False, default=0)
    Condition = Column(String(100))
    Notes = Column(String)
    Documentation = Column(JSON, nullable=False, default=list)
    CreatedDate = Column(DateTime, server_default=func.now())
    UpdatedDate = Column(DateTime, server_default=func.now())

    Location = relationship("Location", back_populates="Stocks")
    Sparepart = relationship("SparepartMaster", back_populates="Stocks")


class ContactPerson(Base):
    __tablename__ = "ContactPersons"

    ContactPersonID = Column(Integer, primary_key=True)
    LocationID = Column(Integer, ForeignKey("Locations.LocationID"), nullable=False)
    PIC = Column(String(255), nullable=False)
    Phone = Column(String(50))
    CreatedDate = Column(DateTime, server_default=func.now())
    UpdatedDate = Column(DateTime, server_default=func.now())

    Location = relationship("Location", back_populates="ContactPersons")
