from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Union


class InvestmentPreferencesUpdate(BaseModel):
    investment_range_min: Optional[float] = None
    investment_range_max: Optional[float] = None
    max_investments_per_year: Optional[int] = None
    interested_locations: Optional[List[str]] = None
    interested_industries: Optional[List[str]] = None
    investment_stages: Optional[List[str]] = None
    pitch_countries: Optional[List[str]] = None
    languages: Optional[List[str]] = None
    additional_criteria: Optional[str] = None


class ProfileInfoUpdate(BaseModel):
    linkedin_url: Optional[str] = None
    twitter_url: Optional[str] = None
    facebook_url: Optional[str] = None
    instagram_url: Optional[str] = None
    personal_website: Optional[str] = None
    about_me: Optional[str] = None
    specialized_field: Optional[str] = None
    previous_investments: Optional[int] = None
    # The account form sends a comma-separated string
    areas_of_expertise: Optional[Union[List[str], str]] = None
    companies: Optional[List[dict]] = None

    @field_validator('areas_of_expertise', mode='before')
    @classmethod
    def split_expertise(cls, v):
        if isinstance(v, str):
            return [item.strip() for item in v.split(',') if item.strip()]
        return v


class ProfileUpdate(BaseModel):
    full_name: Optional[str] = Field(None, min_length=5, max_length=255)
    country_name: Optional[str] = None
    city_name: Optional[str] = None
    phone_number: Optional[str] = None
    mobile_number: Optional[str] = None
    bio: Optional[str] = None
    is_accredited_investor: Optional[bool] = None
    is_investor_profile_complete: Optional[bool] = None
    investment_preferences: Optional[InvestmentPreferencesUpdate] = None
    profile_info: Optional[ProfileInfoUpdate] = None


class InvestorProfileUpdate(BaseModel):
    investment_preferences: Optional[InvestmentPreferencesUpdate] = None
    profile_info: Optional[ProfileInfoUpdate] = None
